"""
Tests for the activation gate state machine and document model
"""

import asyncio

import pytest

from cmp_core.classify.matcher import CategoryMatcher
from cmp_core.config import CMPConfig
from cmp_core.constants import Events
from cmp_core.consent.state import ConsentState
from cmp_core.corpus.index import CorpusIndex, IndexHolder
from cmp_core.corpus.models import Category
from cmp_core.events import EventBus
from cmp_core.gate.dom import Document, MutationStream, ScriptElement
from cmp_core.gate.gate import ActivationGate, ElementState
from cmp_core.gate.html import document_from_html, render_element, scan_html
from cmp_core.storage.memory import InMemoryStorage

from conftest import record


def script(category=None, src=None, text="", **extra):
    attributes = []
    if src:
        attributes.append(("src", src))
    if category is not None:
        attributes.append(("data-category", category))
    attributes.extend((name.replace("_", "-"), value) for name, value in extra.items())
    return ScriptElement(attributes=attributes, text=text)


class BrokenMatcher:
    def classify(self, name, domain=None):
        raise RuntimeError("corpus unavailable")


class TestActivationGate:
    """Test gating transitions"""

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.bus = EventBus()
        self.bus.keep_history = True
        self.config = CMPConfig()
        self.consent = ConsentState(self.storage, self.bus, self.config)
        self.executed = []
        self.matcher = CategoryMatcher(IndexHolder(CorpusIndex.build([
            record("_ga", Category.ANALYTICS),
            record("_fbp", Category.MARKETING),
        ])))
        self.gate = ActivationGate(self.consent, self.bus, self.config,
                                   matcher=self.matcher, executor=self.executed.append)
        self.document = Document()
        self.stream = MutationStream(self.document, auto_flush=True)
        self.gate.start(self.document, self.stream)

    def events(self, name):
        return [e for e in self.bus.history if e.name == name]

    def test_blocked_until_consent_then_activated_verbatim(self):
        self.consent.set({"necessary": True, "analytics": False})
        original = [("src", "https://www.googletagmanager.com/gtag/js"),
                    ("data-category", "analytics"), ("async", "")]
        content = "window.dataLayer = window.dataLayer || [];\n  gtag('js', new Date());"
        element = ScriptElement(attributes=list(original), text=content)

        self.document.insert(element)

        [gated] = self.gate.blocked
        assert gated.state == ElementState.BLOCKED
        assert gated.category == "analytics"
        assert element.get_attribute("type") == "text/plain"
        assert element.get_attribute("data-blocked") == "true"
        assert element.text == content
        assert self.executed == []

        self.consent.set({"necessary": True, "analytics": True})

        [runnable] = self.executed
        assert gated.state == ElementState.ACTIVE
        assert runnable.attributes == original
        assert runnable.text == content
        assert self.document.children == [runnable]
        assert self.gate.blocked == []

    def test_necessary_runs_without_any_decision(self):
        element = script("necessary", src="/js/session.js")

        self.document.insert(element)

        assert self.consent.get() is None
        assert self.executed == [element]
        assert self.gate.blocked == []
        assert element.get_attribute("type") is None

    def test_unmarked_scripts_are_ungated(self):
        element = script(src="/js/app.js")
        data = script(type="application/ld+json", text='{"@type": "Organization"}')

        self.document.insert(element)
        self.document.insert(data)

        assert self.executed == [element]
        assert self.gate.blocked == []

    def test_marked_scripts_block_without_decision(self):
        self.document.insert(script("marketing", src="https://connect.facebook.net/fbevents.js"))

        assert self.executed == []
        assert len(self.gate.blocked) == 1

    def test_discovered_after_consent_runs_directly(self):
        self.consent.set({"analytics": True})
        element = script("analytics", src="/js/stats.js")

        self.document.insert(element)

        assert self.executed == [element]
        assert self.document.children == [element]
        assert self.events(Events.ELEMENT_BLOCKED) == []

    def test_fifo_activation_exactly_once(self):
        first = script("analytics", text="a")
        second = script("marketing", text="b")
        third = script("analytics", text="c")
        for element in (first, second, third):
            self.document.insert(element)

        self.consent.set({"analytics": True})
        assert [e.text for e in self.executed] == ["a", "c"]
        assert [g.element for g in self.gate.blocked] == [second]

        self.consent.set({"analytics": True})
        assert [e.text for e in self.executed] == ["a", "c"]

        self.consent.set({"analytics": True, "marketing": True})
        assert [e.text for e in self.executed] == ["a", "c", "b"]

    def test_revocation_never_reblocks(self):
        self.consent.set({"analytics": True})
        element = script("analytics", text="track()")
        self.document.insert(element)

        self.consent.set({"analytics": False})

        assert self.document.children == [element]
        assert element.get_attribute("type") is None
        assert self.gate.blocked == []
        [reload] = self.events(Events.RELOAD_REQUIRED)
        assert reload.detail["categories"] == ["analytics"]

        later = script("analytics", text="track_again()")
        self.document.insert(later)
        assert self.gate.blocked[0].element is later
        assert self.executed == [element]

    def test_reset_with_running_scripts_requires_reload(self):
        self.consent.set({"marketing": True})
        self.document.insert(script("marketing"))

        self.consent.reset()

        assert self.events(Events.RELOAD_REQUIRED)[0].detail["categories"] == ["marketing"]

    def test_no_reload_when_nothing_was_running(self):
        self.consent.set({"analytics": True})
        self.consent.set({"analytics": False})

        assert self.events(Events.RELOAD_REQUIRED) == []

    def test_author_preblocked_script_is_made_executable(self):
        element = ScriptElement(
            attributes=[("type", "text/plain"), ("data-category", "analytics"),
                        ("src", "/js/a.js")],
            text="",
        )
        self.document.insert(element)
        self.consent.set({"analytics": True})

        [runnable] = self.executed
        assert runnable.attributes == [("data-category", "analytics"), ("src", "/js/a.js")]
        assert runnable.is_executable()

    def test_module_type_is_preserved(self):
        self.document.insert(script("analytics", type="module", text="import x from './x.js';"))
        self.consent.set({"analytics": True})

        [runnable] = self.executed
        assert runnable.get_attribute("type") == "module"

    def test_own_replacements_are_not_reprocessed(self):
        self.document.insert(script("analytics", text="x"))
        self.consent.set({"analytics": True})

        [runnable] = self.executed
        assert self.gate.discover(runnable) is None
        assert len(self.executed) == 1
        assert len(self.events(Events.ELEMENT_ACTIVATED)) == 1

    def test_classification_happens_once(self):
        element = script("analytics")
        self.document.insert(element)

        first = self.gate.blocked[0]
        again = self.gate.discover(element)

        assert again is first
        assert len(self.gate.blocked) == 1

    def test_removed_placeholder_is_dropped(self):
        element = script("analytics", text="x")
        self.document.insert(element)

        self.document.remove(element)
        self.consent.set({"analytics": True})

        assert self.gate.blocked == []
        assert self.executed == []

    def test_moved_placeholder_keeps_its_place(self):
        moved = script("analytics", text="moved")
        other = script("analytics", text="other")
        self.document.insert(moved)
        self.document.insert(other)

        self.document.remove(moved)
        self.document.insert(moved)
        assert [g.element for g in self.gate.blocked] == [moved, other]

        self.consent.set({"analytics": True})

        assert [e.text for e in self.executed] == ["moved", "other"]
        assert self.gate.blocked == []
        assert all(e.get_attribute("type") is None for e in self.document.children)

    def test_placeholder_reinserted_after_consent_activates(self):
        element = script("analytics", text="x")
        self.document.insert(element)
        self.document.remove(element)
        self.consent.set({"analytics": True})
        assert self.executed == []

        self.document.insert(element)

        [runnable] = self.executed
        assert runnable is not element
        assert self.document.children == [runnable]
        assert self.gate.blocked == []

    def test_throwing_script_does_not_rerun_others(self):
        bus = EventBus()
        consent = ConsentState(InMemoryStorage(), bus, self.config)
        ran = []

        def executor(element):
            ran.append(element.text)
            if element.text == "b":
                raise RuntimeError("script threw")

        gate = ActivationGate(consent, bus, self.config, executor=executor)
        document = Document()
        stream = MutationStream(document)
        gate.start(document, stream)
        for text in ("a", "b", "c"):
            document.insert(script("analytics", text=text))
        stream.flush()

        consent.set({"analytics": True})
        consent.set({"analytics": True})
        stream.flush()

        assert ran == ["a", "b", "c"]
        assert gate.blocked == []
        assert consent.get().allows("analytics")
        assert all(e.is_executable() for e in document.children)

    def test_auto_marker_uses_corpus(self):
        element = script("auto", data_cookie="_ga", src="https://www.google-analytics.com/a.js")
        self.document.insert(element)

        assert self.gate.blocked[0].category == "analytics"

        self.consent.set({"analytics": True})
        assert len(self.executed) == 1

    def test_source_labels_are_normalized(self):
        self.document.insert(script("Targeting/Advertising"))

        assert self.gate.blocked[0].category == "marketing"

    def test_unknown_label_fails_closed(self):
        self.document.insert(script("something-new"))
        self.consent.set({"necessary": True, "preferences": True,
                          "analytics": True, "marketing": True})

        assert self.gate.blocked[0].category == "uncategorized"
        assert self.executed == []

    def test_classification_error_fails_closed(self):
        gate = ActivationGate(ConsentState(InMemoryStorage(), self.bus, self.config),
                              self.bus, self.config, matcher=BrokenMatcher(),
                              executor=self.executed.append)
        gate.consent.set({"analytics": True, "marketing": True, "preferences": True})
        document = Document([script("auto", data_cookie="_ga")])

        gate.start(document)

        assert gate.blocked[0].category == "uncategorized"
        assert self.executed == []

    def test_blocking_disabled_runs_everything(self):
        config = CMPConfig(blocking_enabled=False)
        executed = []
        gate = ActivationGate(ConsentState(InMemoryStorage(), EventBus(), config),
                              EventBus(), config, executor=executed.append)
        element = script("marketing")

        gate.start(Document([element]))

        assert executed == [element]

    def test_existing_scripts_handled_on_start(self):
        executed = []
        consent = ConsentState(InMemoryStorage(), EventBus(), self.config)
        gate = ActivationGate(consent, EventBus(), self.config, executor=executed.append)
        ungated = script(src="/js/app.js")
        gated = script("analytics")

        gate.start(Document([ungated, gated]))

        assert executed == [ungated]
        assert gate.blocked[0].element is gated

    def test_stop_drops_tracked_elements(self):
        self.document.insert(script("analytics"))
        self.gate.stop()

        self.document.insert(script("analytics"))
        assert self.gate.blocked == []


class TestMutationStream:
    """Test ordered delivery"""

    def test_records_delivered_in_order_on_flush(self):
        document = Document()
        stream = MutationStream(document)
        seen = []
        stream.observe(lambda records: seen.extend(r.added[0].text for r in records))

        for text in ("1", "2", "3"):
            document.insert(ScriptElement(text=text))

        assert seen == []
        assert stream.pending == 3
        assert stream.flush() == 3
        assert seen == ["1", "2", "3"]

    def test_close_detaches_from_document(self):
        document = Document()
        stream = MutationStream(document)
        stream.close()

        document.insert(ScriptElement())
        assert stream.pending == 0

    @pytest.mark.asyncio
    async def test_polling_loop_feeds_gate(self):
        bus = EventBus()
        config = CMPConfig()
        consent = ConsentState(InMemoryStorage(), bus, config)
        executed = []
        gate = ActivationGate(consent, bus, config, executor=executed.append)
        document = Document()
        stream = MutationStream(document)
        gate.start(document, stream)

        stop = asyncio.Event()
        task = asyncio.create_task(stream.run(interval=0.01, stop=stop))
        document.insert(script("analytics", text="later"))
        document.insert(script(text="now"))
        await asyncio.sleep(0.05)
        stop.set()
        await task

        assert len(gate.blocked) == 1
        assert [e.text for e in executed] == ["now"]


class TestHtml:
    """Test markup scanning"""

    MARKUP = (
        '<html><head>'
        '<script src="https://cdn.example.com/a.js" data-category="marketing" async></script>'
        '<script data-category="analytics">var s = "<b>" && 1 < 2;</script>'
        '</head><body><p>hello</p></body></html>'
    )

    def test_scan_keeps_order_and_content(self):
        first, second = scan_html(self.MARKUP)

        assert first.attributes == [("src", "https://cdn.example.com/a.js"),
                                    ("data-category", "marketing"), ("async", "")]
        assert second.text == 'var s = "<b>" && 1 < 2;'

    def test_render_round_trip_of_attributes(self):
        element = ScriptElement(attributes=[("src", "a.js?x=1&y=2"), ("data-category", "analytics")],
                                text="go();")

        assert render_element(element) == (
            '<script src="a.js?x=1&amp;y=2" data-category="analytics">go();</script>'
        )

    def test_document_from_html_gates_existing_scripts(self):
        bus = EventBus()
        config = CMPConfig()
        executed = []
        gate = ActivationGate(ConsentState(InMemoryStorage(), bus, config), bus, config,
                              executor=executed.append)

        gate.start(document_from_html(self.MARKUP))

        assert [g.category for g in gate.blocked] == ["marketing", "analytics"]
        assert executed == []

"""
Tests for the reference corpus: normalization, index and ingestion
"""

from datetime import datetime, timedelta, UTC

import pytest
import requests

from cmp_core.classify.matcher import CategoryMatcher
from cmp_core.config import CMPConfig
from cmp_core.constants import Events
from cmp_core.corpus.index import CorpusIndex, IndexHolder
from cmp_core.corpus.loader import CorpusLoader, parse_csv
from cmp_core.corpus.models import Category, CorpusRecord, normalize_category
from cmp_core.events import EventBus
from cmp_core.exceptions import CorpusUnavailableError
from cmp_core.storage.memory import InMemoryStorage

from conftest import FakeSession, SAMPLE_CSV, record


class TestNormalizeCategory:
    """Test source label normalization"""

    @pytest.mark.parametrize("raw,expected", [
        ("Strictly Necessary", Category.NECESSARY),
        ("Functional", Category.PREFERENCES),
        ("Performance", Category.ANALYTICS),
        ("Targeting/Advertising", Category.MARKETING),
        ("analytics", Category.ANALYTICS),
        ("Marketing & Targeting", Category.MARKETING),
        ("Web Analytics Tools", Category.ANALYTICS),
    ])
    def test_known_labels(self, raw, expected):
        assert normalize_category(raw) == expected

    def test_unknown_label_is_uncategorized(self):
        assert normalize_category("Security") == Category.UNCATEGORIZED
        assert normalize_category("") == Category.UNCATEGORIZED
        assert normalize_category(None) == Category.UNCATEGORIZED


class TestCorpusIndex:
    """Test index construction"""

    def test_wildcards_kept_out_of_name_table(self):
        index = CorpusIndex.build([
            record("_ga", Category.ANALYTICS),
            record("_gat_*", Category.ANALYTICS, wildcard=True),
        ])

        assert "_ga" in index.by_name
        assert "_gat_*" not in index.by_name
        assert [w.pattern for w in index.wildcards] == ["_gat_*"]

    def test_wildcards_keep_registration_order(self):
        index = CorpusIndex.build([
            record("_hj*", Category.ANALYTICS, wildcard=True),
            record("_h*", Category.MARKETING, wildcard=True),
            record("*", Category.PREFERENCES, wildcard=True),
        ])

        assert [w.pattern for w in index.wildcards] == ["_hj*", "_h*", "*"]

    def test_empty_names_are_skipped(self):
        index = CorpusIndex.build([
            record("  ", Category.ANALYTICS),
            record("sid", Category.NECESSARY),
        ])

        assert len(index) == 1
        assert index.records[0].name == "sid"

    def test_duplicate_names_keep_input_order(self):
        index = CorpusIndex.build([
            record("sid", Category.MARKETING, domain="a.com", record_id="1"),
            record("SID", Category.NECESSARY, domain="b.com", record_id="2"),
        ])

        assert [r.id for r in index.name_candidates("sid")] == ["1", "2"]
        assert index.domain_candidates("b.com")[0].id == "2"

    def test_records_are_immutable(self):
        rec = record("sid", Category.NECESSARY)
        with pytest.raises(Exception):
            rec.category = Category.MARKETING

    def test_stats_and_search(self):
        index = CorpusIndex.build([
            CorpusRecord(name="_ga", category=Category.ANALYTICS, platform="Google Analytics"),
            CorpusRecord(name="_fbp", category=Category.MARKETING, description="Facebook pixel"),
            CorpusRecord(name="_gid", category=Category.ANALYTICS, platform="Google Analytics"),
        ])

        assert index.stats() == {"total": 3, "by_category": {"analytics": 2, "marketing": 1}}
        assert [r.name for r in index.search("google")] == ["_ga", "_gid"]
        assert [r.name for r in index.search("PIXEL")] == ["_fbp"]
        assert len(index.search("google", limit=1)) == 1
        assert index.search("") == []

    def test_holder_swaps_whole_index(self):
        holder = IndexHolder()
        assert holder.current is None

        first = CorpusIndex.build([record("a", Category.ANALYTICS)])
        second = CorpusIndex.build([record("b", Category.MARKETING)])
        holder.replace(first)
        seen = holder.current
        holder.replace(second)

        assert seen is first
        assert holder.current is second


class TestParseCsv:
    """Test Open Cookie Database parsing"""

    def test_parses_and_skips_bad_rows(self):
        records = parse_csv(SAMPLE_CSV)

        assert [r.name for r in records] == ["_ga", "_gat_*", "_fbp", "lang"]
        ga, gat, fbp, lang = records
        assert ga.category == Category.ANALYTICS
        assert ga.platform == "Google Analytics"
        assert ga.privacy_portal == "https://privacy.google.com"
        assert gat.is_wildcard is True
        assert fbp.domain == ".facebook.com"
        assert fbp.category == Category.MARKETING
        assert lang.category == Category.PREFERENCES

    def test_quoted_fields(self):
        text = (
            "ID,Category,Cookie / Data Key name,Domain,Description,Wildcard match\n"
            '7,Analytics,_pk_id,,"Visitor id, first party",0\n'
        )
        records = parse_csv(text)

        assert records[0].description == "Visitor id, first party"

    def test_missing_name_column_is_hard_failure(self):
        with pytest.raises(CorpusUnavailableError):
            parse_csv("ID,Category\n1,Analytics\n")

    def test_empty_source_is_hard_failure(self):
        with pytest.raises(CorpusUnavailableError):
            parse_csv("")


class TestCorpusLoader:
    """Test all-or-nothing refresh and caching"""

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.holder = IndexHolder()
        self.config = CMPConfig()
        self.bus = EventBus()
        self.bus.keep_history = True

    def _loader(self, session) -> CorpusLoader:
        return CorpusLoader(self.storage, self.holder, self.config, bus=self.bus, session=session)

    def test_refresh_fetches_caches_and_publishes(self):
        session = FakeSession()
        index = self._loader(session).refresh(force=True)

        assert session.calls == [self.config.corpus_url]
        assert self.holder.current is index
        assert len(index) == 4

        cache = self.storage.read(self.config.corpus_cache_key)
        assert cache["stats"]["total"] == 4
        assert len(cache["records"]) == 4
        assert [e.name for e in self.bus.history] == [Events.CORPUS_REFRESHED]

    def test_failed_refresh_keeps_previous_index(self):
        previous = self._loader(FakeSession()).refresh(force=True)

        broken = self._loader(FakeSession(error=requests.ConnectionError("down")))
        with pytest.raises(CorpusUnavailableError):
            broken.refresh(force=True)

        assert self.holder.current is previous

    def test_unparseable_source_keeps_previous_index(self):
        previous = self._loader(FakeSession()).refresh(force=True)

        with pytest.raises(CorpusUnavailableError):
            self._loader(FakeSession(text="nothing,useful\n1,2\n")).refresh(force=True)

        assert self.holder.current is previous

    def test_http_error_status_is_unavailable(self):
        with pytest.raises(CorpusUnavailableError):
            self._loader(FakeSession(status_code=503)).refresh(force=True)

        assert self.holder.current is None

    def test_fresh_cache_avoids_network(self):
        self._loader(FakeSession()).refresh(force=True)

        holder = IndexHolder()
        offline = FakeSession(error=requests.ConnectionError("down"))
        loader = CorpusLoader(self.storage, holder, self.config, session=offline)
        index = loader.refresh()

        assert offline.calls == []
        assert len(index) == 4
        assert holder.current is index

    def test_stale_cache_is_refetched(self):
        self._loader(FakeSession()).refresh(force=True)
        cache = self.storage.read(self.config.corpus_cache_key)
        cache["lastUpdated"] = (datetime.now(UTC) - timedelta(days=10)).isoformat()
        self.storage.write(self.config.corpus_cache_key, cache)

        session = FakeSession()
        self._loader(session).refresh()

        assert session.calls == [self.config.corpus_url]

    def test_load_falls_back_to_stale_cache_when_offline(self, failing_session):
        self._loader(FakeSession()).refresh(force=True)
        cache = self.storage.read(self.config.corpus_cache_key)
        cache["lastUpdated"] = (datetime.now(UTC) - timedelta(days=30)).isoformat()
        self.storage.write(self.config.corpus_cache_key, cache)
        holder = IndexHolder()
        bus = EventBus()
        bus.keep_history = True
        loader = CorpusLoader(self.storage, holder, self.config, bus=bus, session=failing_session)

        assert loader.load() is True

        assert failing_session.calls == [self.config.corpus_url]
        assert len(holder.current) == 4
        assert CategoryMatcher(holder).classify("_ga").category == Category.ANALYTICS
        assert bus.history[-1].detail["source"] == "stale-cache"

    def test_load_never_raises(self, failing_session):
        loader = self._loader(failing_session)

        assert loader.load() is False
        assert self.holder.current is None
        assert loader.stats() is None

    def test_load_is_noop_when_index_present(self, fake_session):
        loader = self._loader(fake_session)
        assert loader.load() is True
        assert loader.load() is True

        assert len(fake_session.calls) == 1

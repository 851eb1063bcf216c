"""Shared fixtures for CMP core tests."""

from typing import List, Optional

import pytest
import requests

from cmp_core.corpus.models import Category, CorpusRecord


SAMPLE_CSV = (
    "ID,Platform,Category,Cookie / Data Key name,Domain,Description,Retention period,"
    "Data Controller,User Privacy & GDPR Rights Portals,Wildcard match\n"
    "1,Google Analytics,Analytics,_ga,,ID used to identify users,2 years,Google,"
    "https://privacy.google.com,0\n"
    "2,Google Analytics,Analytics,_gat_*,,Used to throttle request rate,1 minute,Google,,1\n"
    "3,Facebook,Marketing,_fbp,.facebook.com,Tracks visits across websites,3 months,"
    "Facebook,,0\n"
    "4,Generic,Functional,lang,,Remembers the chosen language,session,,,0\n"
    "5,Broken,Analytics,short row\n"
    "6,Nameless,Analytics,,,no name here,,,,0\n"
)


class FakeResponse:
    def __init__(self, text: str, status_code: int = 200):
        self.text = text
        self.status_code = status_code

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")


class FakeSession:
    """Stands in for requests.Session; records requested URLs."""

    def __init__(self, text: str = SAMPLE_CSV, status_code: int = 200,
                 error: Optional[Exception] = None):
        self.text = text
        self.status_code = status_code
        self.error = error
        self.calls: List[str] = []

    def get(self, url, timeout=None):
        self.calls.append(url)
        if self.error is not None:
            raise self.error
        return FakeResponse(self.text, self.status_code)


def record(name: str, category: Category, domain: str = "",
           wildcard: bool = False, record_id: str = "") -> CorpusRecord:
    return CorpusRecord(id=record_id or name, name=name, category=category,
                        domain=domain, is_wildcard=wildcard)


@pytest.fixture
def fake_session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def failing_session() -> FakeSession:
    return FakeSession(error=requests.ConnectionError("network down"))

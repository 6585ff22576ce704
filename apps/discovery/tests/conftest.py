"""
Discovery test fixtures.

FakeDiscoveryClient and FakeVerifier stand in for the LLM and website
checks; `fake_discovery` patches them into the executor so runs dispatched
through eager Celery use them too.
"""

from datetime import date
from unittest.mock import patch

import pytest

from apps.discovery.llm import DiscoveredVendor, DiscoveryResult
from apps.discovery.models import DiscoveryJob, DiscoveryRun, SchedulerConfig, StagedVendor


class FakeDiscoveryClient:
    """
    Returns `count` uniquely named vendors per call, or a fixed name list.

    on_call runs before the result is returned (e.g. to cancel the run).
    """

    def __init__(self, names=None, error=None, on_call=None):
        self.names = names
        self.error = error
        self.on_call = on_call
        self.calls = []
        self.counter = 0

    def discover_vendors(self, area, specialty, count, exclude_names=None, history=None):
        self.calls.append({
            'area': area,
            'specialty': specialty,
            'count': count,
            'exclude_names': list(exclude_names or []),
            'history': list(history or []),
        })
        if self.on_call:
            self.on_call()
        if self.error:
            raise self.error

        if self.names is not None:
            vendors = [DiscoveredVendor(name=name, location=area, specialty=specialty) for name in self.names]
        else:
            vendors = []
            for _ in range(count):
                self.counter += 1
                vendors.append(DiscoveredVendor(
                    name=f"{area} {specialty} studio {self.counter}",
                    location=area,
                    website=f"https://studio{self.counter}.example.com",
                    specialty=specialty,
                    categories=[specialty],
                ))

        turns = [
            {'role': 'user', 'content': f'find {count} {specialty} in {area}'},
            {'role': 'assistant', 'content': '[]'},
        ]
        return DiscoveryResult(vendors=vendors, history=list(history or []) + turns)


class FakeVerifier:
    """Website verifier returning a fixed result; on_verify(url) runs first."""

    def __init__(self, result='valid', on_verify=None):
        self.result = result
        self.on_verify = on_verify
        self.urls = []

    def verify(self, url):
        self.urls.append(url)
        if self.on_verify:
            self.on_verify(url)
        if not url:
            return StagedVendor.WEBSITE_NO_URL
        return self.result

    def close(self):
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


@pytest.fixture
def fake_client():
    return FakeDiscoveryClient()


@pytest.fixture
def fake_verifier():
    return FakeVerifier()


@pytest.fixture
def fake_discovery(fake_client, fake_verifier):
    """Route every executor created during the test to the fakes."""
    with patch('apps.discovery.executor.VendorDiscoveryClient', return_value=fake_client), \
         patch('apps.discovery.executor.WebsiteVerifier', return_value=fake_verifier):
        yield fake_client


@pytest.fixture
def scheduler_config(db):
    config = SchedulerConfig.get_active()
    config.daily_cap = 50
    config.timezone = 'America/Los_Angeles'
    config.save()
    return config


@pytest.fixture
def make_job(db):
    def _make_job(area='Seattle', specialty='photographer', **kwargs):
        kwargs.setdefault('count_per_run', 10)
        kwargs.setdefault('max_total', 20)
        return DiscoveryJob.objects.create(area=area, specialty=specialty, **kwargs)
    return _make_job


@pytest.fixture
def job(make_job):
    return make_job()


@pytest.fixture
def make_run(db):
    def _make_run(job, status=DiscoveryRun.STATUS_QUEUED, **kwargs):
        kwargs.setdefault('run_date', date.today())
        return DiscoveryRun.objects.create(job=job, status=status, **kwargs)
    return _make_run


@pytest.fixture
def make_staged(db):
    def _make_staged(name, **kwargs):
        return StagedVendor.objects.create(name=name, **kwargs)
    return _make_staged

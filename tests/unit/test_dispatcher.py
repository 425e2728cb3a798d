"""Unit tests for lyrics/dispatcher.py."""

import asyncio

import pytest

from core.exceptions import NoResultError, ParseError
from core.telemetry import RequestTelemetry
from lyrics.dispatcher import DispatchPolicy, Dispatcher
from lyrics.models import LanguageTag, Query
from providers.registry import ProviderRegistry
from tests.factories import FakeProvider, failing_provider, make_candidate, make_lyrics, make_query

EN_ROUTE = {
    LanguageTag.EN: ("database", "lrclib", "genius", "llm_search:*"),
    LanguageTag.UNKNOWN: ("database", "lrclib", "genius", "llm_search:*"),
}


def dispatcher_for(*providers, **policy):
    registry = ProviderRegistry(list(providers), table=EN_ROUTE)
    return Dispatcher(registry, DispatchPolicy(**policy))


def strong_lrclib(**kwargs):
    return FakeProvider(
        "lrclib",
        candidate=make_candidate(
            source="lrclib", text=make_lyrics(40), confidence=0.95, has_timestamps=True
        ),
        authoritative=True,
        **kwargs,
    )


class TestPolicy:
    def test_from_settings(self, mock_settings):
        policy = DispatchPolicy.from_settings(mock_settings)
        assert policy.deadline == mock_settings.dispatch_deadline
        assert policy.default_timeout == mock_settings.provider_timeout
        assert policy.early_exit_confidence == 0.8
        assert policy.early_exit_min_length == 500


class TestEarlyExitRule:
    @pytest.mark.parametrize(
        "authoritative, confidence, lines, expected",
        [
            (True, 0.95, 40, True),
            (False, 0.95, 40, False),
            (True, 0.8, 40, False),
            (True, 0.95, 5, False),
        ],
    )
    def test_is_early_exit(self, authoritative, confidence, lines, expected):
        dispatcher = dispatcher_for()
        provider = FakeProvider(authoritative=authoritative)
        candidate = make_candidate(confidence=confidence, text=make_lyrics(lines))
        assert dispatcher.is_early_exit(provider, candidate) is expected


class TestDispatch:
    @pytest.mark.asyncio
    async def test_blank_query_rejected(self):
        with pytest.raises(ParseError):
            await dispatcher_for(strong_lrclib()).dispatch(Query(artist=" ", title="x"), LanguageTag.EN)

    @pytest.mark.asyncio
    async def test_no_providers(self):
        report = await dispatcher_for().dispatch(make_query(), LanguageTag.EN)
        assert not report.found
        assert report.outcomes == {}

    @pytest.mark.asyncio
    async def test_partial_failure(self):
        genius = FakeProvider("genius", candidate=make_candidate(source="genius"))
        report = await dispatcher_for(failing_provider("lrclib"), genius).dispatch(
            make_query(), LanguageTag.EN
        )
        assert report.found
        assert report.ranked.best.source == "genius"
        assert report.outcomes == {"lrclib": "http_503", "genius": "found"}

    @pytest.mark.asyncio
    async def test_all_fail_resolve_raises(self):
        dispatcher = dispatcher_for(failing_provider("lrclib"), failing_provider("genius"))
        with pytest.raises(NoResultError) as exc_info:
            await dispatcher.resolve(make_query(), LanguageTag.EN)
        assert exc_info.value.details["outcomes"] == {"lrclib": "http_503", "genius": "http_503"}

    @pytest.mark.asyncio
    async def test_results_ranked_not_arrival_order(self):
        # The slower lrclib arrives last but ranks first.
        lrclib = FakeProvider(
            "lrclib",
            candidate=make_candidate(source="lrclib", text="short synced", has_timestamps=True),
            delay=0.05,
        )
        genius = FakeProvider("genius", candidate=make_candidate(source="genius"))
        report = await dispatcher_for(lrclib, genius).dispatch(make_query(), LanguageTag.EN)
        assert [c.source for c in report.ranked.candidates] == ["lrclib", "genius"]

    @pytest.mark.asyncio
    async def test_early_exit_cancels_slow_providers(self):
        slow_llm = FakeProvider(
            "llm_search:openai", candidate=make_candidate(source="llm_search:openai"), delay=5.0
        )
        report = await dispatcher_for(strong_lrclib(), slow_llm).dispatch(
            make_query(), LanguageTag.EN
        )
        await asyncio.sleep(0.01)
        assert report.early_exit == "lrclib"
        assert report.outcomes["llm_search:openai"] == "cancelled"
        assert [c.source for c in report.ranked.candidates] == ["lrclib"]
        assert report.elapsed_ms < 1000
        assert slow_llm.cancelled

    @pytest.mark.asyncio
    async def test_non_authoritative_strong_result_waits(self):
        genius = FakeProvider(
            "genius", candidate=make_candidate(source="genius", text=make_lyrics(40), confidence=0.85)
        )
        llm = FakeProvider(
            "llm_search:openai", candidate=make_candidate(source="llm_search:openai"), delay=0.05
        )
        report = await dispatcher_for(genius, llm).dispatch(make_query(), LanguageTag.EN)
        assert report.early_exit is None
        assert len(report.ranked.candidates) == 2

    @pytest.mark.asyncio
    async def test_per_provider_timeout(self):
        slow = FakeProvider("genius", candidate=make_candidate(source="genius"), delay=1.0, timeout=0.02)
        fast = FakeProvider("lrclib", candidate=make_candidate(source="lrclib"))
        report = await dispatcher_for(slow, fast).dispatch(make_query(), LanguageTag.EN)
        assert report.outcomes["genius"] == "timeout"
        assert [c.source for c in report.ranked.candidates] == ["lrclib"]

    @pytest.mark.asyncio
    async def test_global_deadline(self):
        slow = FakeProvider("genius", candidate=make_candidate(source="genius"), delay=1.0)
        fast = FakeProvider("lrclib", candidate=make_candidate(source="lrclib"))
        report = await dispatcher_for(slow, fast, deadline=0.05).dispatch(
            make_query(), LanguageTag.EN
        )
        assert report.outcomes == {"lrclib": "found", "genius": "deadline"}
        assert report.elapsed_ms < 1000

    @pytest.mark.asyncio
    async def test_only_supported_providers_called(self):
        korean = FakeProvider("genius", languages=[LanguageTag.KO])
        lrclib = FakeProvider("lrclib", candidate=make_candidate())
        await dispatcher_for(korean, lrclib).dispatch(make_query(), LanguageTag.EN)
        assert korean.calls == 0
        assert lrclib.calls == 1

    @pytest.mark.asyncio
    async def test_telemetry_recorded(self):
        telemetry = RequestTelemetry()
        providers = [
            FakeProvider("lrclib", candidate=make_candidate()),
            failing_provider("llm_search:groq", "http_429"),
        ]
        await dispatcher_for(*providers).dispatch(make_query(), LanguageTag.EN, telemetry)
        assert telemetry.provider_outcomes == {"lrclib": "found", "llm_search:groq": "http_429"}
        assert telemetry.llm_calls == 1

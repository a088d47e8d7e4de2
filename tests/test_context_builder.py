"""Tests for MemoryContextBuilder."""

from datetime import datetime, timedelta

import pytest
from llm.base_client import LLMError, LLMErrorKind
from memory.context_builder import MemoryContextBuilder
from memory.fallback import fallback_summarize
from memory.models import ChatMessage, ConversationMemory, MemoryContext
from memory.quota_breaker import QuotaBreaker
from memory.store import InMemoryMemoryStore, MemoryStoreError
from memory.summarizer import Summarizer

BASE_TIME = datetime(2026, 3, 1, 9, 0, 0)


class ScriptedSummarizer(Summarizer):
    """Returns (or raises) queued results in order."""

    def __init__(self, results=None, configured=True):
        self.results = list(results or [])
        self.configured = configured
        self.prompts = []

    def is_configured(self):
        return self.configured

    def summarize_text(self, prompt):
        self.prompts.append(prompt)
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


class FlakyStore(InMemoryMemoryStore):
    """In-memory store whose operations can be made to fail."""

    def __init__(self, fail_fetch=False, fail_upsert=False, fail_touch=False, fail_get=False):
        super().__init__()
        self.fail_fetch = fail_fetch
        self.fail_upsert = fail_upsert
        self.fail_touch = fail_touch
        self.fail_get = fail_get

    def fetch_candidates(self, user_id, limit=20):
        if self.fail_fetch:
            raise MemoryStoreError("read failed")
        return super().fetch_candidates(user_id, limit)

    def get(self, memory_id):
        if self.fail_get:
            raise MemoryStoreError("read failed")
        return super().get(memory_id)

    def upsert(self, memory):
        if self.fail_upsert:
            raise MemoryStoreError("write failed")
        super().upsert(memory)

    def touch_accessed(self, memory_id, when=None):
        if self.fail_touch:
            raise MemoryStoreError("write failed")
        super().touch_accessed(memory_id, when)


class FakeNow:
    """Controllable wall clock."""

    def __init__(self, start=BASE_TIME):
        self.value = start

    def __call__(self):
        return self.value

    def advance(self, **kwargs):
        self.value += timedelta(**kwargs)


def memory(conversation_id, summary, topics, importance=1.0, user_id="u1", minutes=0):
    when = BASE_TIME - timedelta(days=1) + timedelta(minutes=minutes)
    return ConversationMemory(
        id=ConversationMemory.memory_id_for(conversation_id),
        user_id=user_id,
        conversation_id=conversation_id,
        summary=summary,
        key_topics=topics,
        importance=importance,
        created_at=when,
        last_accessed=when,
    )


def transcript(count):
    roles = ["user", "assistant"]
    return [
        ChatMessage(role=roles[i % 2], content=f"message number {i} about gardening")
        for i in range(count)
    ]


def quota_error():
    return LLMError("quota", kind=LLMErrorKind.QUOTA_EXCEEDED)


class TestBuildContext:
    """Test per-turn context assembly."""

    def setup_method(self):
        """Set up test fixtures."""
        self.store = FlakyStore()
        self.now = FakeNow()
        self.breaker = QuotaBreaker(clock=lambda: 0.0)

    def make_builder(self, summarizer=None, store=None):
        return MemoryContextBuilder(
            store=store if store is not None else self.store,
            summarizer=summarizer,
            breaker=self.breaker,
            now=self.now
        )

    def test_relevant_memory_ranked_ahead_of_unrelated(self):
        """Test the trip memory beats an unrelated one for a travel question."""
        # Unrelated memory accessed more recently, so the store returns it first
        self.store.upsert(memory("c2", "Reviewed quarterly budget spreadsheet", ["budget", "finance"], minutes=5))
        self.store.upsert(memory("c1", "Discussed trip planning to Japan", ["trip", "japan", "travel"], importance=0.8))

        context = self.make_builder().build_context("u1", "What was that travel idea again?", [])

        assert context.relevant_memories[0] == "Discussed trip planning to Japan"
        assert context.relevant_memories.index("Discussed trip planning to Japan") < \
            context.relevant_memories.index("Reviewed quarterly budget spreadsheet")

    def test_user_context_lines(self):
        """Test relevant memories are rendered for prompt embedding."""
        self.store.upsert(memory("c1", "Discussed trip planning to Japan", ["travel"]))

        context = self.make_builder().build_context("u1", "travel", [])

        assert context.user_context == "Previous conversation: Discussed trip planning to Japan"

    def test_limit_and_touch(self):
        """Test only the top results are kept and their last_accessed refreshed."""
        for i in range(5):
            self.store.upsert(memory(f"c{i}", f"Summary {i}", ["garden"], minutes=i))

        builder = self.make_builder()
        kept = builder.get_relevant_memories("u1", "garden", limit=2)

        assert len(kept) == 2
        for item in kept:
            assert self.store.get(item.id).last_accessed == BASE_TIME
            assert item.last_accessed == BASE_TIME
        untouched = [m for m in self.store.fetch_candidates("u1") if m.last_accessed != BASE_TIME]
        assert len(untouched) == 3

    def test_ties_keep_store_order(self):
        """Test equal scores keep retrieval order."""
        self.store.upsert(memory("older", "Nothing shared", ["x"], minutes=0))
        self.store.upsert(memory("newer", "Nothing shared", ["x"], minutes=1))

        kept = self.make_builder().get_relevant_memories("u1", "unrelated words", limit=2)

        assert [m.conversation_id for m in kept] == ["newer", "older"]

    def test_other_users_memories_not_returned(self):
        """Test retrieval is scoped to the requesting user."""
        self.store.upsert(memory("c1", "Discussed travel", ["travel"], user_id="u2"))

        context = self.make_builder().build_context("u1", "travel", [])

        assert context.relevant_memories == []

    def test_recent_messages_restated(self):
        """Test the transcript is rendered as role: content lines."""
        messages = [{"role": "user", "content": "hello"}, {"role": "assistant", "content": "hi"}]

        context = self.make_builder().build_context("u1", "hello", messages)

        assert context.recent_messages == ["user: hello", "assistant: hi"]

    def test_below_threshold_no_summary(self):
        """Test four messages never produce a rolling summary."""
        summarizer = ScriptedSummarizer(["should not be used"])

        context = self.make_builder(summarizer).build_context("u1", "hi", transcript(4))

        assert context.conversation_summary == ""
        assert summarizer.prompts == []

    def test_below_threshold_no_summary_when_unconfigured(self):
        """Test the threshold applies without a summarizer too."""
        context = self.make_builder().build_context("u1", "hi", transcript(4))

        assert context.conversation_summary == ""

    def test_rolling_summary_from_summarizer(self):
        """Test the summarizer is used at the threshold."""
        summarizer = ScriptedSummarizer(["They talked about gardening."])

        context = self.make_builder(summarizer).build_context("u1", "hi", transcript(5))

        assert context.conversation_summary == "They talked about gardening."
        assert len(summarizer.prompts) == 1
        assert "user: message number 0 about gardening" in summarizer.prompts[0]

    def test_rolling_summary_not_persisted(self):
        """Test the per-turn snapshot does not create a stored memory."""
        summarizer = ScriptedSummarizer(["They talked about gardening."])

        self.make_builder(summarizer).build_context("u1", "hi", transcript(6))

        assert len(self.store) == 0

    def test_unconfigured_summarizer_uses_fallback(self):
        """Test the offline summary stands in without a summarizer."""
        messages = transcript(5)

        context = self.make_builder(ScriptedSummarizer(configured=False)).build_context("u1", "hi", messages)

        assert context.conversation_summary == fallback_summarize(messages).summary

    def test_quota_error_degrades_to_empty_and_counts(self):
        """Test a quota failure yields no summary and feeds the breaker."""
        summarizer = ScriptedSummarizer([quota_error()])

        context = self.make_builder(summarizer).build_context("u1", "hi", transcript(5))

        assert context.conversation_summary == ""
        assert self.breaker.consecutive_quota_errors == 1

    def test_open_breaker_skips_summarizer(self):
        """Test no call is attempted while the breaker is open."""
        summarizer = ScriptedSummarizer([quota_error(), quota_error(), quota_error()])
        builder = self.make_builder(summarizer)
        for _ in range(3):
            builder.build_context("u1", "hi", transcript(5))

        context = builder.build_context("u1", "hi", transcript(5))

        assert context.conversation_summary == ""
        assert len(summarizer.prompts) == 3

    def test_auth_error_does_not_count(self):
        """Test auth failures degrade without touching the breaker."""
        summarizer = ScriptedSummarizer([LLMError("bad key", kind=LLMErrorKind.AUTH_FAILED)])

        context = self.make_builder(summarizer).build_context("u1", "hi", transcript(5))

        assert context.conversation_summary == ""
        assert self.breaker.consecutive_quota_errors == 0

    @pytest.mark.parametrize("store_kwargs", [
        {"fail_fetch": True},
        {"fail_touch": True},
        {"fail_upsert": True},
        {"fail_fetch": True, "fail_touch": True, "fail_upsert": True},
    ])
    @pytest.mark.parametrize("summarizer_kind", ["none", "unconfigured", "broken"])
    @pytest.mark.parametrize("count", [0, 5])
    def test_never_throws(self, store_kwargs, summarizer_kind, count):
        """Test store and summarizer failures never escape build_context."""
        store = FlakyStore(**store_kwargs)
        InMemoryMemoryStore.upsert(store, memory("c1", "Discussed travel", ["travel"]))
        summarizer = {
            "none": None,
            "unconfigured": ScriptedSummarizer(configured=False),
            "broken": ScriptedSummarizer([RuntimeError("network down")]),
        }[summarizer_kind]

        context = self.make_builder(summarizer, store=store).build_context("u1", "travel", transcript(count))

        assert isinstance(context, MemoryContext)
        assert len(context.recent_messages) == count

    def test_fetch_failure_gives_no_memories(self):
        """Test a failed read yields an empty memory list."""
        store = FlakyStore(fail_fetch=True)

        context = self.make_builder(store=store).build_context("u1", "travel", [])

        assert context.relevant_memories == []
        assert context.user_context == ""

    def test_touch_failure_still_returns_memories(self):
        """Test a failed last_accessed update does not drop results."""
        store = FlakyStore(fail_touch=True)
        store.upsert(memory("c1", "Discussed travel", ["travel"]))

        context = self.make_builder(store=store).build_context("u1", "travel", [])

        assert context.relevant_memories == ["Discussed travel"]

    def test_empty_user_rejected(self):
        """Test an empty user id is a caller error."""
        with pytest.raises(ValueError):
            self.make_builder().build_context("", "hi", [])


class TestCreateSummary:
    """Test persisted conversation summaries."""

    def setup_method(self):
        """Set up test fixtures."""
        self.store = FlakyStore()
        self.now = FakeNow()
        self.breaker = QuotaBreaker(clock=lambda: 0.0)

    def make_builder(self, summarizer=None):
        return MemoryContextBuilder(
            store=self.store,
            summarizer=summarizer,
            breaker=self.breaker,
            now=self.now
        )

    def test_summary_and_topics_from_summarizer(self):
        """Test both completions are used and topics parsed."""
        summarizer = ScriptedSummarizer([
            "The user planned a garden.",
            " gardening, soil ,, tomatoes ,",
        ])

        result = self.make_builder(summarizer).create_summary("u1", "c1", transcript(4))

        assert result.id == "c1_summary"
        assert result.summary == "The user planned a garden."
        assert result.key_topics == ["gardening", "soil", "tomatoes"]
        assert "The user planned a garden." in summarizer.prompts[1]
        assert self.store.get("c1_summary") == result

    @pytest.mark.parametrize("count, expected", [(1, 0.1), (5, 0.5), (10, 1.0), (25, 1.0)])
    def test_importance_saturates(self, count, expected):
        """Test importance grows with message count up to 1.0."""
        result = self.make_builder().create_summary("u1", "c1", transcript(count))

        assert result.importance == pytest.approx(expected)

    def test_unconfigured_uses_fallback(self):
        """Test no summarizer means the offline summary."""
        messages = transcript(3)

        result = self.make_builder().create_summary("u1", "c1", messages)

        expected = fallback_summarize(messages)
        assert result.summary == expected.summary
        assert result.key_topics == expected.key_topics

    def test_open_breaker_uses_fallback(self):
        """Test a tripped breaker still produces a stored record."""
        for _ in range(3):
            self.breaker.record_failure(LLMErrorKind.QUOTA_EXCEEDED)
        summarizer = ScriptedSummarizer(["unused", "unused"])

        result = self.make_builder(summarizer).create_summary("u1", "c1", transcript(6))

        assert result.summary == fallback_summarize(transcript(6)).summary
        assert summarizer.prompts == []
        assert self.store.get("c1_summary") is not None

    def test_rate_limit_falls_back_and_records(self):
        """Test a rate limit on the topics call still stores a record."""
        summarizer = ScriptedSummarizer([
            "A summary.",
            LLMError("slow down", kind=LLMErrorKind.RATE_LIMITED),
        ])

        result = self.make_builder(summarizer).create_summary("u1", "c1", transcript(3))

        assert result.summary == fallback_summarize(transcript(3)).summary
        assert self.breaker.consecutive_quota_errors == 1

    def test_auth_error_falls_back_without_counting(self):
        """Test auth failures degrade but do not trip the breaker."""
        summarizer = ScriptedSummarizer([LLMError("bad key", kind=LLMErrorKind.AUTH_FAILED)])

        result = self.make_builder(summarizer).create_summary("u1", "c1", transcript(3))

        assert result.summary == fallback_summarize(transcript(3)).summary
        assert self.breaker.consecutive_quota_errors == 0

    def test_unexpected_summarizer_error_falls_back(self):
        """Test a non-LLM exception still stores the offline summary."""
        summarizer = ScriptedSummarizer([RuntimeError("network down")])

        result = self.make_builder(summarizer).create_summary("u1", "c1", transcript(3))

        assert result.summary == fallback_summarize(transcript(3)).summary
        assert self.store.get("c1_summary") == result
        assert self.breaker.consecutive_quota_errors == 0

    def test_other_users_record_not_overwritten(self):
        """Test a summary id owned by another user is left alone."""
        self.store.upsert(memory("c1", "Their private chat", ["secret"], user_id="u2"))
        summarizer = ScriptedSummarizer(["unused", "unused"])

        with pytest.raises(MemoryStoreError):
            self.make_builder(summarizer).create_summary("u1", "c1", transcript(3))

        stored = self.store.get("c1_summary")
        assert stored.user_id == "u2"
        assert stored.summary == "Their private chat"
        assert summarizer.prompts == []

    def test_repeat_is_idempotent_and_preserves_created_at(self):
        """Test re-summarizing overwrites with the same content and keeps created_at."""
        builder = self.make_builder()
        first = builder.create_summary("u1", "c1", transcript(4))
        self.now.advance(hours=2)

        second = builder.create_summary("u1", "c1", transcript(4))

        assert second.summary == first.summary
        assert second.key_topics == first.key_topics
        assert second.created_at == first.created_at
        assert second.last_accessed == BASE_TIME + timedelta(hours=2)
        assert len(self.store) == 1

    def test_write_failure_propagates(self):
        """Test a failed write is reported to the caller."""
        self.store.fail_upsert = True

        with pytest.raises(MemoryStoreError):
            self.make_builder().create_summary("u1", "c1", transcript(3))

    def test_read_failure_before_write_is_tolerated(self):
        """Test a failed lookup of the existing record still writes."""
        self.store.fail_get = True

        result = self.make_builder().create_summary("u1", "c1", transcript(3))

        assert result.created_at == BASE_TIME

    def test_empty_user_rejected(self):
        """Test an empty user id is a caller error."""
        with pytest.raises(ValueError):
            self.make_builder().create_summary("", "c1", transcript(3))


class TestRenderPrompt:
    """Test prompt text assembly."""

    def test_includes_context_blocks(self):
        """Test memory, summary and recent turns appear in the prompt."""
        builder = MemoryContextBuilder(store=InMemoryMemoryStore(), prompt_recent_messages=2)
        context = MemoryContext(
            recent_messages=["user: one", "assistant: two", "user: three"],
            conversation_summary="Counting practice.",
            relevant_memories=["Discussed travel"],
            user_context="Previous conversation: Discussed travel",
        )

        prompt = builder.render_prompt(context, "three")

        assert "Previous relevant conversations:\nPrevious conversation: Discussed travel" in prompt
        assert "Current conversation summary:\nCounting practice." in prompt
        assert "user: one" not in prompt
        assert "assistant: two\nuser: three" in prompt
        assert prompt.endswith("Human: three\n\nAI Assistant:")

    def test_omits_empty_blocks(self):
        """Test empty context fields leave no headings behind."""
        builder = MemoryContextBuilder(store=InMemoryMemoryStore())

        prompt = builder.render_prompt(MemoryContext(), "hello")

        assert "Previous relevant conversations" not in prompt
        assert "Current conversation summary" not in prompt
        assert prompt.endswith("Human: hello\n\nAI Assistant:")

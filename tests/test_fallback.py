"""Tests for the offline summary generator."""

from memory.fallback import fallback_summarize
from memory.models import ChatMessage, FallbackSummary


def msgs(*pairs):
    return [ChatMessage(role=role, content=content) for role, content in pairs]


class TestFallbackSummarize:
    """Test word-frequency summaries."""

    def test_empty_transcript(self):
        """Test that no messages still yields a summary."""
        result = fallback_summarize([])

        assert isinstance(result, FallbackSummary)
        assert result.key_topics == []
        assert result.summary == "Conversation about general topics"

    def test_topics_by_frequency(self):
        """Test topics are ordered by descending frequency."""
        messages = msgs(
            ("user", "python python python packaging"),
            ("assistant", "packaging wheels python"),
        )

        result = fallback_summarize(messages)

        assert result.key_topics[:3] == ["python", "packaging", "wheels"]

    def test_short_words_dropped(self):
        """Test that words of three characters or fewer are ignored."""
        result = fallback_summarize(msgs(("user", "the cat sat on a mat, yes")))

        assert result.key_topics == []

    def test_punctuation_stripped(self):
        """Test that non-word characters are removed before counting."""
        result = fallback_summarize(msgs(("user", "Japan! japan? JAPAN.")))

        assert result.key_topics == ["japan"]

    def test_ties_keep_first_seen_order(self):
        """Test that equal counts keep insertion order."""
        result = fallback_summarize(msgs(("user", "zebra apple mango kiwis grape lemon")))

        assert result.key_topics == ["zebra", "apple", "mango", "kiwis", "grape"]

    def test_at_most_five_topics(self):
        """Test the topic list is capped."""
        text = "alpha bravo charlie delta echoes foxtrot golfing hotel"
        result = fallback_summarize(msgs(("user", text)))

        assert len(result.key_topics) == 5

    def test_summary_template_with_excerpts(self):
        """Test summary names top three topics and quotes first and last messages."""
        messages = msgs(
            ("user", "Planning a trip to Japan in spring"),
            ("assistant", "Spring in Japan is lovely for travel"),
            ("user", "What about Japan rail passes for travel?"),
        )

        result = fallback_summarize(messages)

        assert result.summary.startswith("Conversation about japan, spring, travel")
        assert 'Started with: "Planning a trip to Japan in spring"' in result.summary
        assert 'ended with: "What about Japan rail passes for travel?"' in result.summary

    def test_excerpts_truncated(self):
        """Test excerpts are limited to 50 characters."""
        long_text = "word " * 40
        result = fallback_summarize(msgs(("user", long_text), ("assistant", long_text)))

        excerpt = long_text.strip()[:50]
        assert f'Started with: "{excerpt}"' in result.summary

    def test_no_excerpts_when_last_message_empty(self):
        """Test excerpts need both first and last content."""
        result = fallback_summarize(msgs(("user", "Planning travel"), ("assistant", "")))

        assert "Started with" not in result.summary

    def test_deterministic(self):
        """Test identical input gives identical output."""
        messages = msgs(("user", "compare database engines"), ("assistant", "database engines differ"))

        assert fallback_summarize(messages) == fallback_summarize(messages)

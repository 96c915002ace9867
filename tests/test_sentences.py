"""Tests for sentence boundary detection."""

from __future__ import annotations

from journal_search.ingestion.sentences import ABBREVIATIONS, SentenceSplitter


class TestSentenceSplitter:
    def setup_method(self) -> None:
        self.splitter = SentenceSplitter()

    def test_basic_split(self) -> None:
        assert self.splitter.split("I went out. It was raining. I came back.") == [
            "I went out.",
            "It was raining.",
            "I came back.",
        ]

    def test_title_abbreviation_not_split(self) -> None:
        sentences = self.splitter.split("Dr. Smith is here. He is a doctor.")
        assert len(sentences) == 2
        assert sentences[0] == "Dr. Smith is here."
        assert sentences[1] == "He is a doctor."

    def test_decimal_not_split(self) -> None:
        sentences = self.splitter.split("The value is 3.14 exactly. Pi is important.")
        assert sentences == ["The value is 3.14 exactly.", "Pi is important."]

    def test_multiple_decimals_in_one_sentence(self) -> None:
        sentences = self.splitter.split("I ran 5.5 miles and then 2.25 more. Then I slept.")
        assert sentences == ["I ran 5.5 miles and then 2.25 more.", "Then I slept."]

    def test_latin_abbreviation_not_split(self) -> None:
        sentences = self.splitter.split("Bring fruit, e.g. Apples and pears. Done.")
        assert sentences == ["Bring fruit, e.g. Apples and pears.", "Done."]

    def test_abbreviations_are_case_sensitive(self) -> None:
        assert "Mr." in ABBREVIATIONS
        assert "mr." not in ABBREVIATIONS
        assert len(self.splitter.split("I met mr. Jones today.")) == 2
        assert len(self.splitter.split("I met Mr. Jones today.")) == 1

    def test_terminator_runs(self) -> None:
        assert self.splitter.split("Can you believe it?! Yes I can.") == [
            "Can you believe it?!",
            "Yes I can.",
        ]

    def test_lowercase_continuation_not_split(self) -> None:
        assert self.splitter.split("I went to the store. then home.") == [
            "I went to the store. then home."
        ]

    def test_trailing_ellipsis_before_lowercase(self) -> None:
        assert len(self.splitter.split("Wait... what happened there")) == 1

    def test_opening_quote_starts_sentence(self) -> None:
        assert self.splitter.split('He stopped. "Why?" she asked.') == [
            "He stopped.",
            '"Why?" she asked.',
        ]

    def test_newlines_are_whitespace(self) -> None:
        assert self.splitter.split("First line.\nSecond line.") == ["First line.", "Second line."]

    def test_unpunctuated_transcript_is_one_sentence(self) -> None:
        text = "  so today I mostly just thought about work and stuff  "
        assert self.splitter.split(text) == ["so today I mostly just thought about work and stuff"]

    def test_empty_and_whitespace(self) -> None:
        assert self.splitter.split("") == []
        assert self.splitter.split("   \n\t ") == []

    def test_stateless_between_calls(self) -> None:
        text = "One. Two. Three."
        assert self.splitter.split(text) == self.splitter.split(text)

    def test_custom_abbreviations(self) -> None:
        splitter = SentenceSplitter(abbreviations=frozenset({"Approx."}))
        assert len(splitter.split("Approx. Ten people came.")) == 1
        assert len(splitter.split("Dr. Smith came.")) == 2

    def test_accented_capital_starts_sentence(self) -> None:
        assert self.splitter.split("Il est parti. État stable.") == [
            "Il est parti.",
            "État stable.",
        ]
        assert len(self.splitter.split("Ich war müde. Öfter jetzt. (Über alles.)")) == 3

    def test_accented_lowercase_continues(self) -> None:
        assert len(self.splitter.split("Il est parti... été chaud.")) == 1

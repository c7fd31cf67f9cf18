from souschef_voice.runtime.wake_word import WakeWordDetector

PHRASES = ["hey sous", "hey sue", "hey souz", "hey soos"]


def test_remainder_after_wake_phrase() -> None:
    match = WakeWordDetector(PHRASES).detect("Hey Sous what's next")
    assert match is not None
    assert match.remainder == "what's next"
    assert not match.is_bare


def test_bare_wake_phrase() -> None:
    detector = WakeWordDetector(PHRASES)
    match = detector.detect("hey sue")
    assert match is not None and match.is_bare
    assert detector.detect("Hey Soos.").is_bare  # type: ignore[union-attr]


def test_no_match() -> None:
    detector = WakeWordDetector(PHRASES)
    assert detector.detect("what's next") is None
    assert not detector.contains_wake_phrase("")


def test_earliest_occurrence_wins() -> None:
    match = WakeWordDetector(PHRASES).detect("ok hey souz start a timer then hey sous stop")
    assert match is not None
    assert match.phrase == "hey souz"
    assert match.remainder == "start a timer then hey sous stop"


def test_phrase_mid_sentence_and_leading_punctuation() -> None:
    match = WakeWordDetector(PHRASES).detect("so, Hey Sous, how long do I boil eggs?")
    assert match is not None
    assert match.position == 4
    assert match.remainder == "how long do I boil eggs?"


def test_phrases_are_normalised() -> None:
    detector = WakeWordDetector(["  Hey Sous ", "", "HEY SUE"])
    assert set(detector.phrases) == {"hey sous", "hey sue"}

"""Split text into typing units: words, punctuation, whitespace, single CJK characters."""

from typing import List

PUNCTUATION = frozenset(
    ".,!?:;"
    "。，！？：；"
    "、（）()[]{}"
    "《》<>\"'“”‘’"
    "-—_+=/\\|@#$%^&*~"
)


def is_ascii_word_char(ch: str) -> bool:
    return ("0" <= ch <= "9") or ("A" <= ch <= "Z") or ("a" <= ch <= "z") or ch == "_"


def tokenize(text: str) -> List[str]:
    """Split ``text`` into ordered units for token-mode pacing.

    Consecutive ASCII word characters merge into one unit; newlines, spaces,
    tabs and punctuation stand alone; ``\\r`` is dropped; any other character
    (e.g. a CJK ideograph) is its own unit.

    >>> tokenize("Hello, World!\\n")
    ['Hello', ',', ' ', 'World', '!', '\\n']
    """
    tokens: List[str] = []
    word: List[str] = []

    def flush_word() -> None:
        if word:
            tokens.append("".join(word))
            word.clear()

    for ch in text:
        if ch == "\r":
            continue
        if ch in ("\n", " ", "\t") or ch in PUNCTUATION:
            flush_word()
            tokens.append(ch)
        elif is_ascii_word_char(ch):
            word.append(ch)
        else:
            flush_word()
            tokens.append(ch)

    flush_word()
    return tokens

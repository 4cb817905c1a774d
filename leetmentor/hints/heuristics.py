"""
Local hint heuristics

Deterministic rules used whenever the backend is off, rate limited or
failing. Every rule carries three texts, one per hint level, going from
conceptual to near-fix. Nothing here returns a full solution.
"""

from dataclasses import dataclass

# Last tier of the fallback chain
STATIC_HINT_TEMPLATE = (
    "Break the problem into smaller parts, write out a tiny example by hand, "
    "and look for work you repeat."
)

# Local excerpt when the user has not written anything yet
STARTER_FRAGMENT = "def solve(nums):\n    # trace a small example first\n    pass"

EXCERPT_LINES = 3


@dataclass(frozen=True)
class HintRule:
    """Keyword rule with one text per level."""

    name: str
    keywords: tuple[str, ...]
    match_problem: bool
    match_failure: bool
    texts: tuple[str, str, str]

    def matches(self, problem_id: str, failure: str) -> bool:
        haystacks = []
        if self.match_problem:
            haystacks.append(problem_id)
        if self.match_failure:
            haystacks.append(failure)
        return any(k in h for h in haystacks for k in self.keywords)

    def text_for(self, level: int) -> str:
        return self.texts[max(1, min(level, len(self.texts))) - 1]


HINT_RULES: tuple[HintRule, ...] = (
    HintRule(
        name="hash_map",
        keywords=("two-sum", "two_sum", "twosum"),
        match_problem=True,
        match_failure=False,
        texts=(
            "Think about what you need to remember about the numbers you have already "
            "seen. A hash map gives you O(1) lookups.",
            "Keep a hash map from value to index while you scan. For each number, ask "
            "whether its complement (target - number) is already in the map.",
            "Do it in one pass: look up target - x in the map before inserting x, and "
            "return both indices the moment the complement is found.",
        ),
    ),
    HintRule(
        name="boundaries",
        keywords=("index", "range"),
        match_problem=False,
        match_failure=True,
        texts=(
            "Check your array boundaries. Indices start at 0 and end at len - 1.",
            "Look at every loop bound and every i + 1 / i - 1 access. Which one can "
            "step past the end or before the start?",
            "Walk through the failing input by hand and print the index right before "
            "the failing access; the off-by-one is usually in a loop condition like <= n.",
        ),
    ),
    HintRule(
        name="complexity",
        keywords=("time limit", "tle"),
        match_problem=False,
        match_failure=True,
        texts=(
            "Your approach is correct but too slow. Estimate its time complexity "
            "against the input limits.",
            "Look for nested loops or repeated scans. A hash map, a sort or two "
            "pointers often turns O(n^2) into O(n log n) or O(n).",
            "Find the inner loop that recomputes something you already know, and "
            "replace it with a precomputed structure you update as you go.",
        ),
    ),
)

GENERIC_RULE = HintRule(
    name="generic",
    keywords=(),
    match_problem=False,
    match_failure=False,
    texts=(
        "Identify the pattern first: is this an array scan, a lookup problem, two "
        "pointers, or a search?",
        "Pick the data structure that makes the expensive step cheap, then write the "
        "loop around it.",
        "Write down the invariant your loop keeps, then check each line against it "
        "using the smallest failing example.",
    ),
)


def select_rule(problem_id: str = "", failure: str = "") -> HintRule:
    """First matching rule, or the generic one."""
    pid = (problem_id or "").lower()
    fail = (failure or "").lower()
    for rule in HINT_RULES:
        if rule.matches(pid, fail):
            return rule
    return GENERIC_RULE


def local_hint(problem_id: str = "", failure: str = "", level: int = 1) -> str:
    """Heuristic hint for a problem and failure text at the given level."""
    return select_rule(problem_id, failure).text_for(level)


def local_excerpt(snippet: str = "", line_max: int = 200) -> str:
    """
    Short excerpt of the user's own code.

    Takes the first three non-empty lines, trimmed, each cut to ``line_max``
    characters. Falls back to a starter fragment for an empty snippet.
    """
    lines = [line.strip() for line in (snippet or "").splitlines()]
    lines = [line for line in lines if line][:EXCERPT_LINES]
    if not lines:
        return STARTER_FRAGMENT
    return "\n".join(
        line if len(line) <= line_max else line[:line_max] + "..." for line in lines
    )

import pytest

from relcrawl.models import CrawlLevel
from relcrawl.policy import AdmissionPolicy, EdgeCondition, admission_policy


@pytest.mark.parametrize(
    ("level", "depth", "expected"),
    [
        (CrawlLevel.ONE, 1, AdmissionPolicy(True, EdgeCondition.ALWAYS, False)),
        (CrawlLevel.ONE_POINT_FIVE, 1, AdmissionPolicy(True, EdgeCondition.ALWAYS, True)),
        (CrawlLevel.ONE_POINT_FIVE, 2, AdmissionPolicy(False, EdgeCondition.IF_NEIGHBOR, False)),
        (CrawlLevel.TWO, 1, AdmissionPolicy(True, EdgeCondition.ALWAYS, True)),
        (CrawlLevel.TWO, 2, AdmissionPolicy(True, EdgeCondition.ALWAYS, False)),
    ],
)
def test_admission_table(level: CrawlLevel, depth: int, expected: AdmissionPolicy) -> None:
    assert admission_policy(level, depth) == expected


def test_level_one_never_reaches_depth_two() -> None:
    with pytest.raises(ValueError):
        admission_policy(CrawlLevel.ONE, 2)


@pytest.mark.parametrize("level", list(CrawlLevel))
def test_no_level_recurses_past_depth_two(level: CrawlLevel) -> None:
    with pytest.raises(ValueError):
        admission_policy(level, 3)
    if level is not CrawlLevel.ONE:
        assert admission_policy(level, 2).recurse is False


def test_admission_accepts_level_aliases() -> None:
    assert admission_policy("1.5", 2).edge_condition is EdgeCondition.IF_NEIGHBOR

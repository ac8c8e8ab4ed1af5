"""Tests for the single-step GOAP planner."""
from dataclasses import dataclass, field

from planner import GOAPPlanner, WorldView


@dataclass
class StubAction:
    id: str
    preconditions: dict = field(default_factory=dict)
    effects: dict = field(default_factory=dict)


class TestGOAPPlanner:
    """Tests for plan()."""

    def test_goal_already_satisfied(self):
        state = WorldView(aiHasMoreTerritory=True)
        assert GOAPPlanner().plan(state, [StubAction("x", effects={"aiHasMoreTerritory": True})],
                                  {"aiHasMoreTerritory": True}) == []

    def test_no_matching_effects(self):
        actions = [StubAction("x", effects={"playerIsDistracted": True})]
        assert GOAPPlanner().plan(WorldView(), actions, {"playerIsWeaker": True}) is None

    def test_single_usable_action(self):
        action = StubAction("strike", {"hasEnoughResources": True}, {"playerIsWeaker": True})
        plan = GOAPPlanner().plan(WorldView(hasEnoughResources=True), [action], {"playerIsWeaker": True})
        assert plan == [action]

    def test_preconditions_must_hold(self):
        action = StubAction("strike", {"hasEnoughResources": True}, {"playerIsWeaker": True})
        assert GOAPPlanner().plan(WorldView(), [action], {"playerIsWeaker": True}) is None

    def test_first_usable_action_wins(self):
        blocked = StubAction("a", {"neutralRegionExists": True}, {"playerIsWeaker": True})
        first = StubAction("b", {}, {"playerIsWeaker": True})
        second = StubAction("c", {}, {"playerIsWeaker": True})
        plan = GOAPPlanner().plan({}, [blocked, first, second], {"playerIsWeaker": True})
        assert plan == [first]

    def test_never_chains(self):
        enabler = StubAction("earn", {}, {"hasEnoughResources": True})
        strike = StubAction("strike", {"hasEnoughResources": True}, {"playerIsWeaker": True})
        assert GOAPPlanner().plan(WorldView(), [enabler, strike], {"playerIsWeaker": True}) is None

    def test_accepts_plain_dict_state(self):
        action = StubAction("x", {"flag": True}, {"done": True})
        assert GOAPPlanner().plan({"flag": True}, [action], {"done": True}) == [action]

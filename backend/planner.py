"""
GOAP-lite planner.

Finds one action whose effects satisfy the goal and whose preconditions hold
in the current state. Deliberately single-ply: no chaining, no search.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence


@dataclass
class WorldView:
    """Boolean facts the AI plans over."""
    hasEnoughResources: bool = False
    neutralRegionExists: bool = False
    unfortifiedRegionExists: bool = False
    aiHasMoreTerritory: bool = False
    aiTerritoryIsStronger: bool = False
    playerIsWeaker: bool = False
    playerIsDistracted: bool = False

    def to_dict(self) -> Dict[str, bool]:
        return dict(self.__dict__)


def _holds(conditions: Dict[str, object], state: Dict[str, object]) -> bool:
    return all(state.get(key) == value for key, value in conditions.items())


class GOAPPlanner:

    def plan(self, state, actions: Sequence, goal: Dict[str, object]) -> Optional[List]:
        """Return [] if the goal already holds, [action] for the first usable action, else None."""
        if isinstance(state, WorldView):
            state = state.to_dict()
        if _holds(goal, state):
            return []

        relevant = [a for a in actions if all(a.effects.get(k) == v for k, v in goal.items())]
        for action in relevant:
            if _holds(action.preconditions, state):
                return [action]
        return None

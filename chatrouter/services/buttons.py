from typing import Mapping, Optional

from chatrouter.schemas.decision import Action, Command, Decision, ProfileUpdate

# Quick-reply buttons that behave exactly like typing "/<id>".
NAVIGATION_BUTTONS = frozenset(
    {Command.START, Command.HELP, Command.PROFILE, Command.STATS, Command.SETTINGS}
)

GOAL_BUTTONS: Mapping[str, str] = {
    "goal_1": "lose-weight",
    "goal_2": "gain-muscle",
    "goal_3": "control-sugar",
    "goal_4": "maintain",
}


def navigation_text(button_id: str) -> Optional[str]:
    """Command text for a navigation button, e.g. ``help`` -> ``/help``."""
    normalized = (button_id or "").strip().lower()
    if normalized in {command.value for command in NAVIGATION_BUTTONS}:
        return f"/{normalized}"
    return None


def goal_decision(button_id: str) -> Optional[Decision]:
    """A goal button is an explicit profile update; no classification needed."""
    goal = GOAL_BUTTONS.get((button_id or "").strip().lower())
    if goal is None:
        return None
    return Decision(
        action=Action.UPDATE_PROFILE,
        confidence=1.0,
        reasoning=f"goal button {button_id}",
        extracted_data=ProfileUpdate(goal=goal),
    )

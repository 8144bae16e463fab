"""
Goal descriptors for the three remote operations.
Built once from the workflow configuration and reused for every cycle.
"""

from dataclasses import dataclass, asdict
from typing import Dict, Any

from core.settings import WorkflowConfig


@dataclass(frozen=True)
class BlockDetectionGoal:
    """Where to look for blocks and how big they are"""
    frame: str
    table_height: float
    block_size: float

    def to_payload(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class InteractiveManipulationGoal:
    """Marker setup for letting the user pick a target pose"""
    block_size: float
    frame: str

    def to_payload(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class PickPlaceGoal:
    """Motion parameters for the pick and place, plus the result topic"""
    frame: str
    z_up: float
    gripper_open: float
    gripper_closed: float
    topic: str

    def to_payload(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class WorkflowGoals:
    """The full set of goals for one workflow, one per operation kind"""
    block_detection: BlockDetectionGoal
    interactive_manipulation: InteractiveManipulationGoal
    pick_place: PickPlaceGoal


def build_goals(config: WorkflowConfig) -> WorkflowGoals:
    """
    Derive every goal from the configuration.

    The same inputs always produce equal goals; nothing here depends on
    results from earlier steps.
    """
    return WorkflowGoals(
        block_detection=BlockDetectionGoal(
            frame=config.arm_link,
            table_height=config.table_height,
            block_size=config.block_size,
        ),
        interactive_manipulation=InteractiveManipulationGoal(
            block_size=config.block_size,
            frame=config.arm_link,
        ),
        pick_place=PickPlaceGoal(
            frame=config.arm_link,
            z_up=config.z_up,
            gripper_open=config.gripper_open,
            gripper_closed=config.gripper_closed,
            topic=config.pick_place_topic,
        ),
    )

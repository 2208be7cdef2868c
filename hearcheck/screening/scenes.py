from __future__ import annotations

import random
from dataclasses import dataclass
from typing import List, Tuple


@dataclass(frozen=True)
class Scene:
    id: str
    title: str
    instruction: str
    options: Tuple[str, str, str]


SCENES: Tuple[Scene, ...] = (
    Scene("dog_doorbell", "Find the doorbell", "Which doghouse has the ringing doorbell?", ("doghouse1", "doghouse2", "doghouse3")),
    Scene("treasure_chest", "Treasure hunt", "Which chest is humming with treasure?", ("chest1", "chest2", "chest3")),
    Scene("bird_nest", "Bird's nest", "Which tree is the bird singing from?", ("tree1", "tree2", "tree3")),
    Scene("magic_potion", "Magic potion", "Which potion is bubbling?", ("potion1", "potion2", "potion3")),
    Scene("flower_garden", "Buzzing bee", "Which flower is the bee hiding in?", ("flower1", "flower2", "flower3")),
    Scene("musical_instruments", "Music room", "Which instrument is playing?", ("guitar", "piano", "drum")),
)


@dataclass(frozen=True)
class SceneLayout:
    """One trial's board: the scene, its artwork order and the slot that sounds."""

    scene: Scene
    positions: Tuple[int, int, int]
    correct_slot: int

    def option_at(self, slot: int) -> str:
        return self.scene.options[self.positions[slot]]

    def slots(self) -> List[str]:
        return [self.option_at(i) for i in range(3)]


def layout_for(index: int, rng: random.Random) -> SceneLayout:
    """Scenes rotate in order; artwork order and correct slot are drawn independently."""
    scene = SCENES[index % len(SCENES)]
    positions = [0, 1, 2]
    rng.shuffle(positions)
    correct = rng.randrange(3)
    return SceneLayout(scene=scene, positions=(positions[0], positions[1], positions[2]), correct_slot=correct)

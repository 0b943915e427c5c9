from __future__ import annotations

from dataclasses import dataclass

from llmemo.storage.models import ArchivedSpeaker

ADJECTIVES: tuple[str, ...] = (
    "Sparkly",
    "Cosmic",
    "Fuzzy",
    "Wobbly",
    "Snazzy",
    "Zippy",
    "Glittery",
    "Bouncy",
    "Toasty",
    "Squishy",
    "Dapper",
    "Peppy",
    "Mellow",
    "Twinkly",
    "Swooshy",
    "Wiggly",
)

ANIMALS: tuple[str, ...] = (
    "Capybara",
    "Axolotl",
    "Quokka",
    "Narwhal",
    "Pangolin",
    "Tardigrade",
    "Blobfish",
    "Platypus",
    "Wombat",
    "Fennec",
    "Tapir",
    "Okapi",
    "Manatee",
    "Kiwi",
    "Puffin",
    "Chinchilla",
)


@dataclass(frozen=True, slots=True)
class SpeakerColor:
    name: str
    hex: str


SPEAKER_COLOR_PALETTE: tuple[SpeakerColor, ...] = (
    SpeakerColor("coral", "#f97316"),
    SpeakerColor("emerald", "#10b981"),
    SpeakerColor("teal", "#14b8a6"),
    SpeakerColor("amber", "#f59e0b"),
    SpeakerColor("blue", "#3b82f6"),
    SpeakerColor("purple", "#a855f7"),
    SpeakerColor("pink", "#ec4899"),
    SpeakerColor("sky", "#0ea5e9"),
    SpeakerColor("rose", "#f43f5e"),
    SpeakerColor("lime", "#84cc16"),
    SpeakerColor("orange", "#fb923c"),
    SpeakerColor("cyan", "#06b6d4"),
    SpeakerColor("fuchsia", "#d946ef"),
    SpeakerColor("slate", "#64748b"),
    SpeakerColor("yellow", "#eab308"),
    SpeakerColor("indigo", "#6366f1"),
)


@dataclass(frozen=True, slots=True)
class SpeakerIdentity:
    id: str
    name: str
    color: SpeakerColor
    ordinal: int


def speaker_hash(speaker_id: str) -> int:
    """Stable signed 32-bit rolling hash of a speaker id."""

    value = 0
    for char in speaker_id:
        value = (value * 31 + ord(char)) & 0xFFFFFFFF
    return value - 0x1_0000_0000 if value >= 0x8000_0000 else value


def _name_indices(speaker_id: str, ordinal: int) -> tuple[int, int]:
    value = speaker_hash(speaker_id)
    return abs(value + ordinal) % len(ADJECTIVES), abs(value * 7 + ordinal * 3) % len(ANIMALS)


def generate_name(speaker_id: str, ordinal: int) -> str:
    adjective, animal = _name_indices(speaker_id, ordinal)
    return f"{ADJECTIVES[adjective]} {ANIMALS[animal]}"


def speaker_color(ordinal: int) -> SpeakerColor:
    return SPEAKER_COLOR_PALETTE[ordinal % len(SPEAKER_COLOR_PALETTE)]


class SpeakerIdentityCache:
    """Per-recording mapping from provider speaker ids to display identities."""

    def __init__(self) -> None:
        self._identities: dict[str, SpeakerIdentity] = {}

    def __len__(self) -> int:
        return len(self._identities)

    def __contains__(self, speaker_id: object) -> bool:
        return speaker_id in self._identities

    def _unused_name(self, speaker_id: str, ordinal: int) -> str:
        taken = {identity.name for identity in self._identities.values()}
        adjective, animal = _name_indices(speaker_id, ordinal)
        total = len(ADJECTIVES) * len(ANIMALS)
        start = adjective * len(ANIMALS) + animal
        for step in range(total):
            slot = (start + step) % total
            name = f"{ADJECTIVES[slot // len(ANIMALS)]} {ANIMALS[slot % len(ANIMALS)]}"
            if name not in taken:
                return name
        # Every combination is in use; reuse the generated one.
        return generate_name(speaker_id, ordinal)

    def identity_for(self, speaker_id: str) -> SpeakerIdentity:
        identity = self._identities.get(speaker_id)
        if identity is None:
            ordinal = len(self._identities)
            identity = SpeakerIdentity(
                id=speaker_id,
                name=self._unused_name(speaker_id, ordinal),
                color=speaker_color(ordinal),
                ordinal=ordinal,
            )
            self._identities[speaker_id] = identity
        return identity

    def identities(self) -> list[SpeakerIdentity]:
        return list(self._identities.values())

    def name_for(self, speaker_id: str | None) -> str | None:
        if speaker_id is None or speaker_id not in self._identities:
            return None
        return self._identities[speaker_id].name

    def reset(self) -> None:
        self._identities.clear()

    def to_archived_speakers(self) -> list[ArchivedSpeaker]:
        return [ArchivedSpeaker(id=item.id, name=item.name) for item in self._identities.values()]

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class TrainingSection:
    id: str
    title: str
    description: str
    video_url: str
    duration: str


# Ordered: each section unlocks the next one.
SECTIONS: tuple[TrainingSection, ...] = (
    TrainingSection(
        id="section1",
        title="Professional Communication",
        description="Learn effective communication techniques in a professional environment",
        video_url="https://drive.google.com/file/d/1K7hyyDPFesbN30_zfHBWIc_fXx56RxCN/view?usp=sharing",
        duration="3 min",
    ),
    TrainingSection(
        id="section2",
        title="Time Management",
        description="Master strategies for efficient time management in your workplace",
        video_url="https://www.youtube.com/watch?v=AgYVYOZrpzY",
        duration="3 min",
    ),
    TrainingSection(
        id="section3",
        title="Workplace Etiquette",
        description="Understand essential workplace etiquette and professional conduct",
        video_url="https://www.youtube.com/watch?v=VRXmsVF_QFY",
        duration="3 min",
    ),
)


def section_ids() -> list[str]:
    return [s.id for s in SECTIONS]


def get_section(section_id: str) -> TrainingSection | None:
    for s in SECTIONS:
        if s.id == section_id:
            return s
    return None

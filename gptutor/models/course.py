"""Course catalogue for the practice labs served by the tutor."""
from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True, frozen=True)
class Course:
    """A practice lab the remote endpoint can answer questions for."""

    id: str
    name: str
    short_name: str
    default_question: str

    def as_dict(self) -> dict[str, str]:
        return {
            "id": self.id,
            "name": self.name,
            "short_name": self.short_name,
            "default_question": self.default_question,
        }


COURSES: dict[str, Course] = {
    "decision": Course(
        id="decision",
        name="Decision-Making Practice Lab",
        short_name="Decision Lab",
        default_question="What is BATNA?",
    ),
    "marketing": Course(
        id="marketing",
        name="Marketing Strategy Practice Lab",
        short_name="Marketing Lab",
        default_question="What is market segmentation?",
    ),
    "strategy": Course(
        id="strategy",
        name="Strategic Thinking Practice Lab",
        short_name="Strategy Lab",
        default_question="What is competitive advantage?",
    ),
}

DEFAULT_COURSE = "decision"


def get_course(course_id: str | None) -> Course:
    """Return the course for ``course_id``, falling back to the default lab."""

    key = (course_id or "").strip().lower()
    return COURSES.get(key) or COURSES[DEFAULT_COURSE]

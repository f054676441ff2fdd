"""
Class Label Table
=================

Maps detector class indices to semantic UI categories.
"""

from dataclasses import dataclass
from typing import Iterable, Mapping, Optional

# Categories of the bundled form-field UI detection model, in class-index order
DEFAULT_CLASS_LABELS: tuple[str, ...] = (
    "DOB",
    "address",
    "age input",
    "age",
    "button",
    "checkbox",
    "city",
    "company",
    "country dropdown",
    "country input",
    "date",
    "day dropdown",
    "doc-upload",
    "dropdown",
    "email-input",
    "emp id",
    "first-name",
    "gender dropdown",
    "gender",
    "input",
    "job role",
    "last-name",
    "message",
    "month dropdown",
    "name",
    "otp",
    "password",
    "phone-num",
    "radio_button",
    "region",
    "reminder checkbox",
    "state dropdown",
    "state input-",
    "state",
    "terms checkbox",
    "username",
    "web url-",
    "year dropdown",
    "zip code",
)


@dataclass(frozen=True)
class ClassLabelTable:
    """
    Immutable class index to label mapping.

    Indices without an entry resolve to ``class_<id>``.
    """

    labels: Mapping[int, str]

    @classmethod
    def from_sequence(cls, labels: Iterable[str]) -> "ClassLabelTable":
        """Build a table where each label's position is its class index."""
        return cls(labels=dict(enumerate(labels)))

    @classmethod
    def default(cls, overrides: Optional[Iterable[str]] = None) -> "ClassLabelTable":
        """Built-in table, or one built from ``overrides`` when non-empty."""
        override_list = list(overrides or [])
        return cls.from_sequence(override_list or DEFAULT_CLASS_LABELS)

    def label(self, class_id: int) -> str:
        """Return the label for a class index."""
        return self.labels.get(class_id) or f"class_{class_id}"

    def __len__(self) -> int:
        return len(self.labels)

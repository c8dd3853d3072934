"""Built-in form templates."""

import json
from dataclasses import dataclass, field
from enum import StrEnum


class FormTemplateId(StrEnum):
    FEEDBACK = "feedback"
    WAITLIST = "waitlist"
    CONTACT = "contact"


@dataclass(frozen=True)
class FormTemplate:
    id: FormTemplateId
    name: str
    description: str
    fields: list[dict] = field(default_factory=list)

    def schema_json(self) -> str:
        """Serialized schema descriptor stored on the Form row."""
        return json.dumps({"version": 1, "fields": self.fields}, sort_keys=True)


FORM_TEMPLATES: dict[FormTemplateId, FormTemplate] = {
    FormTemplateId.FEEDBACK: FormTemplate(
        id=FormTemplateId.FEEDBACK,
        name="Feedback Form",
        description="Collect user feedback",
        fields=[
            {"name": "rating", "type": "number", "required": True, "min": 1, "max": 5},
            {"name": "feedback", "type": "text", "required": True, "minLength": 10},
            {"name": "email", "type": "email", "required": False},
        ],
    ),
    FormTemplateId.WAITLIST: FormTemplate(
        id=FormTemplateId.WAITLIST,
        name="Waitlist Form",
        description="Collect waitlist signups",
        fields=[
            {"name": "email", "type": "email", "required": True},
            {"name": "name", "type": "text", "required": True, "minLength": 2},
            {"name": "referralSource", "type": "text", "required": False},
        ],
    ),
    FormTemplateId.CONTACT: FormTemplate(
        id=FormTemplateId.CONTACT,
        name="Contact Form",
        description="Simple contact form for inquiries",
        fields=[
            {"name": "name", "type": "text", "required": True, "minLength": 2},
            {"name": "email", "type": "email", "required": True},
            {"name": "message", "type": "text", "required": True, "minLength": 10},
        ],
    ),
}

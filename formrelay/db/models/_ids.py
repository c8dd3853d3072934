"""Primary key default shared by the models."""

import uuid


def new_id() -> str:
    return str(uuid.uuid4())

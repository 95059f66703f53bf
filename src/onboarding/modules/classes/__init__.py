from .models import ClassSubject

__all__ = ["ClassSubject"]

"""School onboarding API: invitation tokens and role-hierarchy authorization."""

__version__ = "0.1.0"

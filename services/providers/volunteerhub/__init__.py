"""VolunteerHub provider package."""

from services.providers.volunteerhub.adapter import VolunteerHubAdapter

__all__ = ["VolunteerHubAdapter"]

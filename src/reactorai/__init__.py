"""reactorai - conversational setup of blockchain automations."""

__app_name__ = "reactorai"
__version__ = "0.1.0"

"""Design feedback wizard - durable multi-step review flow."""

# No imports at package level to avoid circular import issues
# Import modules directly where needed

__all__ = [
    "DraftStore",
    "FeedbackSessionManager",
    "GestureNavigator",
    "HttpSubmissionGateway",
    "WizardConfig",
    "WizardController",
    "WizardState",
]

from django.apps import AppConfig


class CorrectiveActionsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "hsse_core.corrective_actions"

from api.src.models.run import RunSummary, RunDetail, TriggerResponse

__all__ = [
    "RunSummary",
    "RunDetail",
    "TriggerResponse",
]

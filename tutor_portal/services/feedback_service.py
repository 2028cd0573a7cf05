from typing import List, Optional
from tutor_portal.api import ApiClient
from tutor_portal.schemas.feedback_schema import Feedback, FeedbackCreate


def _feedbacks_from(response) -> List[Feedback]:
    return [Feedback.model_validate(item) for item in response.unwrap("feedbacks", [])]


class FeedbackService:
    def __init__(self, api: ApiClient):
        self.api = api

    def create(self, data: FeedbackCreate) -> Optional[Feedback]:
        response = self.api.post("/feedback", data.to_payload())
        feedback = response.unwrap("feedback")
        return Feedback.model_validate(feedback) if feedback else None

    def for_session(self, session_id: str) -> List[Feedback]:
        return _feedbacks_from(self.api.get(f"/feedback/session/{session_id}"))

    def given(self) -> List[Feedback]:
        return _feedbacks_from(self.api.get("/feedback/my/given"))

    def received(self) -> List[Feedback]:
        return _feedbacks_from(self.api.get("/feedback/my/received"))

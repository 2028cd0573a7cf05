from typing import Any, Dict, Optional
from tutor_portal.api import ApiClient


class ReportService:
    """Dashboard and staff report statistics. Stats are opaque dictionaries for display."""

    def __init__(self, api: ApiClient):
        self.api = api

    def dashboard_stats(self) -> Dict[str, Any]:
        return self.api.get("/reports/dashboard").unwrap("stats", {})

    def overview(self, params: Optional[dict] = None) -> Dict[str, Any]:
        response = self.api.get("/reports/overview", params=params)
        return response.data if isinstance(response.data, dict) else {}

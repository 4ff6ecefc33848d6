import logging
import httpx
from typing import Any, Dict, List, Optional, Sequence
from src.api.integrations.powerbi.config import PowerBIConfig
from src.api.integrations.powerbi.dax import remove_column
from src.api.powerbi.exceptions import UpstreamQueryFailure

# Upstream wording for a column missing from the model, in the locales we see
MISSING_COLUMN_MARKERS = ("cannot be found", "não pode ser encontrada", "not be used")

logger = logging.getLogger(__name__)


class PowerBIClient:
    def __init__(self, config: Optional[PowerBIConfig] = None):
        self.config = config or PowerBIConfig()

    async def execute_query(
        self,
        workspace_id: str,
        dataset_id: str,
        token: str,
        query: str,
        optional_columns: Sequence[str] = (),
    ) -> List[Dict[str, Any]]:
        """
        Run a DAX query against a dataset.

        Args:
            workspace_id: Power BI workspace (group) id
            dataset_id: Dataset id
            token: Bearer token
            query: DAX query
            optional_columns: Columns that may be dropped and the query re-sent
                once when the dataset reports them missing

        Returns:
            List of row dicts of the first result table (empty when absent)

        Raises:
            UpstreamQueryFailure: On a non-2xx response or a transport error
        """
        try:
            return await self._post_query(workspace_id, dataset_id, token, query)
        except UpstreamQueryFailure as e:
            column = self._missing_optional_column(str(e), query, optional_columns)
            if not column:
                raise
            logger.warning(f"Column {column} not found in dataset {dataset_id}, retrying without it")
            try:
                return await self._post_query(workspace_id, dataset_id, token, remove_column(query, column))
            except UpstreamQueryFailure as retry_error:
                raise UpstreamQueryFailure(
                    f"{e}. Retry without {column}: {retry_error}",
                    status_code=retry_error.status_code,
                )

    async def _post_query(self, workspace_id: str, dataset_id: str, token: str, query: str) -> List[Dict[str, Any]]:
        url = self.config.execute_queries_url(workspace_id, dataset_id)
        body = {
            "queries": [{"query": query}],
            "serializerSettings": {"includeNulls": True},
        }
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }
        try:
            async with httpx.AsyncClient(timeout=self.config.timeout_seconds) as client:
                response = await client.post(url, json=body, headers=headers)
                response.raise_for_status()
                payload = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"HTTP error occurred in PowerBIClient execute_query: {e.response.status_code}")
            raise UpstreamQueryFailure(
                f"Query failed with status {e.response.status_code}: {e.response.text}",
                status_code=e.response.status_code,
            )
        except httpx.HTTPError as e:
            logger.error(f"Error occurred in PowerBIClient execute_query: {e}")
            raise UpstreamQueryFailure(f"Network error executing query: {e}")
        except ValueError as e:
            raise UpstreamQueryFailure(f"Query response is not valid JSON: {e}")

        return self._first_table_rows(payload)

    @staticmethod
    def _first_table_rows(payload: Any) -> List[Dict[str, Any]]:
        try:
            rows = payload["results"][0]["tables"][0]["rows"]
        except (KeyError, IndexError, TypeError):
            return []
        return rows or []

    @staticmethod
    def _missing_optional_column(error_text: str, query: str, optional_columns: Sequence[str]) -> Optional[str]:
        for column in optional_columns:
            if column in error_text and column in query and any(
                    marker in error_text for marker in MISSING_COLUMN_MARKERS):
                return column
        return None

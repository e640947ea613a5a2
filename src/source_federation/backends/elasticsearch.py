"""Elasticsearch search backend over the REST ``_search`` API."""

from __future__ import annotations

from typing import Any

import httpx

from source_federation.exceptions import BackendError, BackendTimeout
from source_federation.models.domain import QueryCriteria, SearchHit, SearchPage
from source_federation.observability.logger import get_logger

logger = get_logger("elasticsearch_backend")


def build_search_body(criteria: QueryCriteria, fields: list[str], limit: int) -> dict[str, Any]:
    """Translate criteria into an Elasticsearch request body.

    Free text becomes a ``simple_query_string`` over the projected fields
    (``match_all`` when empty); each filter becomes a ``term`` clause, or
    ``terms`` when given a list of accepted values.
    """
    if criteria.text.strip():
        must: dict[str, Any] = {
            "simple_query_string": {
                "query": criteria.text,
                "fields": list(fields),
                "default_operator": "and",
            }
        }
    else:
        must = {"match_all": {}}

    filters = []
    for field_name, value in criteria.filters.items():
        if isinstance(value, (list, tuple, set)):
            filters.append({"terms": {field_name: list(value)}})
        else:
            filters.append({"term": {field_name: value}})

    return {
        "query": {"bool": {"must": [must], "filter": filters}},
        "_source": list(fields),
        "size": limit,
        "track_total_hits": True,
    }


def parse_search_response(data: Any) -> SearchPage:
    if not isinstance(data, dict):
        raise BackendError("Malformed search response: expected a JSON object")

    hits_section = data.get("hits") or {}
    raw_hits = hits_section.get("hits") or []
    hits = [
        SearchHit(
            doc_id=hit.get("_id"),
            score=hit.get("_score"),
            fields=hit.get("_source") or {},
        )
        for hit in raw_hits
    ]

    total = hits_section.get("total")
    if isinstance(total, dict):
        total = total.get("value")

    shards = data.get("_shards") or {}
    failed_shards = shards.get("failed", 0)
    timed_out = bool(data.get("timed_out", False))
    detail = None
    if failed_shards:
        detail = f"{failed_shards} of {shards.get('total', '?')} shards failed"
    elif timed_out:
        detail = "search timed out on the cluster; results are incomplete"

    return SearchPage(
        hits=hits,
        total=total if isinstance(total, int) else None,
        incomplete=bool(failed_shards) or timed_out,
        detail=detail,
    )


class ElasticsearchBackend:
    """Search backend bound to one Elasticsearch cluster.

    One instance is shared by every index; ``for_index`` satisfies the
    registry's backend factory contract.
    """

    def __init__(
        self,
        base_url: str,
        username: str = "",
        password: str = "",
        request_timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        auth = httpx.BasicAuth(username, password) if username else None
        self._client = client or httpx.AsyncClient(
            base_url=base_url,
            auth=auth,
            timeout=httpx.Timeout(request_timeout),
        )

    def for_index(self, index: str) -> ElasticsearchBackend:
        return self

    async def search(
        self,
        index: str,
        criteria: QueryCriteria,
        fields: list[str],
        limit: int,
        timeout: float,
    ) -> SearchPage:
        body = build_search_body(criteria, fields, limit)
        try:
            response = await self._client.post(
                f"/{index}/_search",
                json=body,
                timeout=httpx.Timeout(timeout),
            )
            response.raise_for_status()
        except httpx.TimeoutException as e:
            raise BackendTimeout(f"Index '{index}' did not answer within {timeout}s") from e
        except httpx.HTTPStatusError as e:
            raise BackendError(
                f"Index '{index}' returned HTTP {e.response.status_code}: "
                f"{_error_reason(e.response)}"
            ) from e
        except httpx.HTTPError as e:
            raise BackendError(f"Index '{index}' unreachable: {e}") from e

        try:
            data = response.json()
        except ValueError as e:
            raise BackendError(f"Index '{index}' returned a non-JSON body") from e

        page = parse_search_response(data)
        logger.debug("search_completed", index=index, hits=len(page.hits), total=page.total)
        return page

    async def ping(self) -> bool:
        try:
            response = await self._client.get("/")
            return response.status_code == 200
        except httpx.HTTPError:
            return False

    async def aclose(self) -> None:
        await self._client.aclose()


def _error_reason(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text[:200]
    error = data.get("error") if isinstance(data, dict) else data
    if isinstance(error, dict):
        return str(error.get("reason") or error.get("type") or error)
    return str(error)

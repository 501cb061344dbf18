"""Schemas for agent queries and the query endpoints."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class AgentResponse(BaseModel):
    """One response from the agent endpoint. Immutable once returned."""

    model_config = ConfigDict(frozen=True)

    status: int = Field(..., description="HTTP status of the agent response.")
    data: Any = Field(None, description="Raw JSON body returned by the agent.")
    timestamp: int = Field(..., description="Epoch milliseconds when the response was received.")
    request_id: str | None = Field(None, description="Value of the x-request-id response header, if any.")


class QueryResult(BaseModel):
    """Result of one query step. depth is 0 for the initial query of a chain."""

    query: str
    response: AgentResponse
    depth: int = Field(0, ge=0)
    cached: bool = False
    follow_up_queries: list[str] = Field(default_factory=list)


class QueryRequest(BaseModel):
    """Request body for POST /query and POST /query/recursive."""

    query: str = Field(..., min_length=1, description="Natural-language question for the agent.")
    conversation_id: str | None = Field(
        None, description="Conversation scope; the configured default is used when omitted."
    )


class RecursiveQueryResponse(BaseModel):
    """Response for POST /query/recursive."""

    results: list[QueryResult] = Field(default_factory=list)
    total: int = Field(0, description="Number of steps executed in the chain.")
    max_depth: int = Field(0, description="Deepest step reached (0 when only the initial query ran).")

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "results": [
                        {
                            "query": "sales",
                            "response": {"status": 200, "data": {"has_more_results": True}, "timestamp": 0},
                            "depth": 0,
                            "cached": False,
                            "follow_up_queries": ["sales (page 1)"],
                        }
                    ],
                    "total": 1,
                    "max_depth": 0,
                }
            ]
        }
    }

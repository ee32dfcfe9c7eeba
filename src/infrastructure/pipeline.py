from typing import Any, Dict, List, Tuple

# Stages are accepted in this order only, so that SQL (WHERE, ORDER BY, OFFSET,
# LIMIT) and the in-memory store produce the same results.
SUPPORTED_STAGES = ("$match", "$sort", "$skip", "$limit")


def parse_pipeline(pipeline: List[Dict[str, Any]]) -> List[Tuple[str, Any]]:
    """
    Validates an aggregation pipeline and returns its (operator, argument) pairs.

    Raises:
        ValueError: On unknown operators, malformed stages or out-of-order stages.
    """
    stages = []
    last_rank = -1
    for stage in pipeline:
        if not isinstance(stage, dict) or len(stage) != 1:
            raise ValueError(f"Pipeline stages must be single-key dicts, got {stage!r}")

        operator, argument = next(iter(stage.items()))
        if operator not in SUPPORTED_STAGES:
            raise ValueError(f"Unsupported pipeline stage {operator}")

        rank = SUPPORTED_STAGES.index(operator)
        # Several $match stages combine; everything else appears at most once
        if rank < last_rank or (rank == last_rank and operator != "$match"):
            raise ValueError(f"Pipeline stage {operator} is out of order")
        last_rank = rank

        if operator == "$match" and not isinstance(argument, dict):
            raise ValueError("$match takes a dict of field values")
        elif operator == "$sort" and (
            not isinstance(argument, dict) or any(direction not in (1, -1) for direction in argument.values())
        ):
            raise ValueError("$sort takes a dict of field names to 1 or -1")
        elif operator in ("$skip", "$limit") and (not isinstance(argument, int) or argument < 0):
            raise ValueError(f"{operator} takes a non-negative integer")

        stages.append((operator, argument))
    return stages


def matches(body: Dict[str, Any], conditions: Dict[str, Any]) -> bool:
    return all(body.get(field) == value for field, value in conditions.items())

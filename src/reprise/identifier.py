"""
Pure identifier builders.

Capture adapters and replay key extraction must build byte-identical strings
for equal calls; both sides call these functions and nothing else.
"""


def http_identifier(method: str, url: str) -> str:
    """
    HTTP identifier: "METHOD url" with the method uppercased.

    Example:
        http_identifier("post", "https://a/b") == "POST https://a/b"
    """
    return f"{method.upper()} {url}"


def redis_identifier(cmd: str, args: list[str]) -> str:
    """
    Redis identifier: "CMD arg1 arg2 ..." with the command uppercased.

    Example:
        redis_identifier("get", ["k"]) == "GET k"
    """
    return f"{cmd.upper()} {' '.join(args)}".strip()


def pg_identifier(sql: str) -> str:
    """Postgres identifier: the SQL text, unchanged."""
    return sql


def grpc_identifier(service: str, method: str) -> str:
    """gRPC identifier: the full method path "/package.Service/Method"."""
    return f"/{service.strip('/')}/{method.strip('/')}"

from fastapi import HTTPException, Request, status


async def require_session(request: Request) -> str:
    """Resolve the caller's department from its bearer token."""
    tokens = request.app.state.ctx.settings.tenant_tokens
    scheme, _, token = request.headers.get("Authorization", "").partition(" ")
    department = tokens.get(token) if scheme == "Bearer" and token else None
    if not department:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
        )
    return department


async def public_department(request: Request) -> str:
    department = request.headers.get("x-department") or request.query_params.get("department")
    if not department or not department.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized: Missing department",
        )
    return department

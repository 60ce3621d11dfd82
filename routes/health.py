from fastapi import APIRouter, Request

router = APIRouter(prefix="/health", tags=["Health Check"])

@router.get("/backend", summary="Check if the Frappe backend is reachable")
async def check_backend(request: Request):
    if await request.app.state.frappe.ping():
        return {"status": "online", "message": "Frappe backend is reachable"}
    else:
        return {"status": "offline", "message": "Frappe backend is not reachable"}

@router.get("/sessions", summary="Number of open form sessions")
async def count_sessions(request: Request):
    return {"open_sessions": len(request.app.state.sessions)}

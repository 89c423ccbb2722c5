from fastapi import APIRouter, Request

router = APIRouter()


@router.post("/run")
async def run_now(request: Request):
    scheduler = request.app.state.scheduler
    result = await scheduler.run_once(trigger="manual")
    if result is None:
        return {"ok": False, "reason": "run already in progress"}
    return {"ok": True, **result}

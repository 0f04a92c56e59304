from dataclasses import asdict

from fastapi import APIRouter, Depends, status

from chatrouter.api.deps import get_router
from chatrouter.schemas.inbound import ConversationContext
from chatrouter.schemas.responses import AnalyzeRequest, AnalyzeResponse
from chatrouter.schemas.results import CommandMatch
from chatrouter.services.router import MessageRouter

router = APIRouter()


@router.post(
    "/analyze",
    status_code=status.HTTP_200_OK,
    response_model=AnalyzeResponse,
    summary="Show how a message would be routed without dispatching it",
)
async def analyze(
    request: AnalyzeRequest,
    message_router: MessageRouter = Depends(get_router),
) -> AnalyzeResponse:
    context = ConversationContext(user_id=request.user_id, language=request.language)
    detected = message_router.language_detector.detect(request.text)
    result = await message_router.resolve(request.text, context)

    if isinstance(result, CommandMatch):
        return AnalyzeResponse(
            kind="command",
            detected_language=detected,
            command=result.command.value,
            args=list(result.args),
        )
    return AnalyzeResponse(
        kind="decision",
        detected_language=detected,
        decision=result.decision,
        attempts=[asdict(attempt) for attempt in result.attempts],
    )

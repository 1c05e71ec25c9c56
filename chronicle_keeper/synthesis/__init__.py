from .orchestrator import CharacterResult, SynthesisOrchestrator, SynthesisOutcome, SynthesisTask
from .parsing import ParseError, parse_diary_response, parse_profile_response, strip_code_fence

__all__ = [
    "CharacterResult",
    "ParseError",
    "SynthesisOrchestrator",
    "SynthesisOutcome",
    "SynthesisTask",
    "parse_diary_response",
    "parse_profile_response",
    "strip_code_fence",
]

"""
Program resolution, existence checks, transaction replay and run history
(the orchestrator lives in services.idl_verifier)
"""

from .program_registry import ProgramRegistry, KNOWN_PROGRAM_IDS
from .program_checker import ProgramExistenceChecker, anchor_idl_address
from .account_keys import resolve_account_keys, find_program_index
from .idl_coder import IdlInstructionCoder, DecodedInstruction
from .instruction_decoder import InstructionDecoder
from .verification_classifier import VerificationClassifier
from .verification_history import VerificationHistory

__all__ = [
    # Resolution
    "ProgramRegistry",
    "KNOWN_PROGRAM_IDS",

    # Existence
    "ProgramExistenceChecker",
    "anchor_idl_address",

    # Decoding
    "resolve_account_keys",
    "find_program_index",
    "IdlInstructionCoder",
    "DecodedInstruction",
    "InstructionDecoder",

    # Grading + history
    "VerificationClassifier",
    "VerificationHistory",
]

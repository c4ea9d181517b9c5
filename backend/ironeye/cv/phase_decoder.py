"""
Streaming Viterbi decoder for snatch phases.

The classifier emits per-frame logits over the nine phases. On their own
they flicker and occasionally jump to physically impossible phases
(e.g. STANDING -> LOCKOUT). The decoder constrains them with the sport's
transition grammar:

    STANDING   -> HANDONBELL
    HANDONBELL -> HIKE | STANDING
    HIKE       -> PULL
    PULL       -> FLOAT | DROP           (bailout)
    FLOAT      -> LOCKOUT | DROP
    LOCKOUT    -> DROP | PARK
    DROP       -> CATCH | STANDING
    CATCH      -> PARK | STANDING | PULL (chained reps)
    PARK       -> STANDING

Decoding is ONLINE: each call starts the max-sum recursion from the phase
the previous call ended in, so consecutive windows form one continuous path.
"""

import numpy as np
from scipy.special import log_softmax
from typing import Dict, FrozenSet, Iterable, Optional, Union
from enum import Enum
import logging

logger = logging.getLogger(__name__)


class SnatchPhase(Enum):
    """Snatch phases, in classifier output order."""
    STANDING = "STANDING"
    HANDONBELL = "HANDONBELL"
    HIKE = "HIKE"
    PULL = "PULL"
    FLOAT = "FLOAT"
    LOCKOUT = "LOCKOUT"
    DROP = "DROP"
    CATCH = "CATCH"
    PARK = "PARK"

    @property
    def index(self) -> int:
        return PHASES.index(self)


PHASES = list(SnatchPhase)

DEFAULT_GRAMMAR: Dict[SnatchPhase, FrozenSet[SnatchPhase]] = {
    SnatchPhase.STANDING: frozenset({SnatchPhase.HANDONBELL}),
    SnatchPhase.HANDONBELL: frozenset({SnatchPhase.HIKE, SnatchPhase.STANDING}),
    SnatchPhase.HIKE: frozenset({SnatchPhase.PULL}),
    SnatchPhase.PULL: frozenset({SnatchPhase.FLOAT, SnatchPhase.DROP}),
    SnatchPhase.FLOAT: frozenset({SnatchPhase.LOCKOUT, SnatchPhase.DROP}),
    SnatchPhase.LOCKOUT: frozenset({SnatchPhase.DROP, SnatchPhase.PARK}),
    SnatchPhase.DROP: frozenset({SnatchPhase.CATCH, SnatchPhase.STANDING}),
    SnatchPhase.CATCH: frozenset({SnatchPhase.PARK, SnatchPhase.STANDING, SnatchPhase.PULL}),
    SnatchPhase.PARK: frozenset({SnatchPhase.STANDING}),
}


class DecoderContractError(ValueError):
    """Score rows do not match what the decoder was configured for."""


class TransitionGrammar:
    """
    Immutable transition cost matrix over the phase set.

    matrix[p, s] is the score added for moving from phase p to phase s:
    a bonus on the diagonal, 0 for legal switches and a large finite
    penalty for illegal ones. -inf is never used so scores stay finite.
    """

    SELF_TRANSITION_BONUS = 2.0
    TRANSITION_PENALTY = 0.0
    ILLEGAL_PENALTY = -1000.0

    def __init__(
        self,
        edges: Optional[Dict[SnatchPhase, Iterable[SnatchPhase]]] = None,
        self_transition_bonus: float = SELF_TRANSITION_BONUS,
        illegal_penalty: float = ILLEGAL_PENALTY
    ):
        if not np.isfinite(illegal_penalty):
            raise ValueError("illegal_penalty must be finite")
        edges = DEFAULT_GRAMMAR if edges is None else edges
        self._edges = {p: frozenset(edges.get(p, ())) | {p} for p in PHASES}

        n = len(PHASES)
        matrix = np.full((n, n), illegal_penalty, dtype=np.float64)
        for src, targets in self._edges.items():
            for dst in targets:
                matrix[src.index, dst.index] = (
                    self_transition_bonus if src == dst else self.TRANSITION_PENALTY
                )
        matrix.setflags(write=False)
        self._matrix = matrix

    @property
    def matrix(self) -> np.ndarray:
        return self._matrix

    def is_legal(self, src: SnatchPhase, dst: SnatchPhase) -> bool:
        return dst in self._edges[src]

    def successors(self, phase: SnatchPhase) -> FrozenSet[SnatchPhase]:
        return self._edges[phase]


class ViterbiDecoder:
    """
    Online max-sum decoder with a persisted current phase.

    Usage:
        decoder = ViterbiDecoder(steps=36)
        phase = decoder.decode(logits)   # logits shape (36, 9)
    """

    START_PHASE = SnatchPhase.STANDING

    def __init__(self, steps: int, grammar: Optional[TransitionGrammar] = None):
        if steps < 1:
            raise ValueError(f"steps must be >= 1, got {steps}")
        self.steps = steps
        self.grammar = grammar or TransitionGrammar()
        self.num_classes = len(PHASES)
        self._state = self.START_PHASE.index

    @property
    def current_phase(self) -> SnatchPhase:
        return PHASES[self._state]

    def decode(self, scores) -> SnatchPhase:
        """
        Continue the best path through `steps` rows of raw class scores.

        Args:
            scores: Array-like of shape (steps, num_phases), raw logits

        Returns:
            Most likely phase at the last row (also persisted)

        Raises:
            DecoderContractError: wrong shape or non-finite scores
        """
        logits = np.asarray(scores, dtype=np.float64)
        expected = (self.steps, self.num_classes)
        if logits.shape != expected:
            raise DecoderContractError(
                f"Expected score rows of shape {expected}, got {logits.shape}"
            )
        if not np.all(np.isfinite(logits)):
            raise DecoderContractError("Score rows contain NaN or infinite values")

        # Row max is subtracted internally, so arbitrarily large logits are safe
        log_probs = log_softmax(logits, axis=1)
        trans = self.grammar.matrix

        # t=0 continues from the persisted phase
        prev = trans[self._state] + log_probs[0]
        for t in range(1, self.steps):
            prev = np.max(prev[:, None] + trans, axis=0) + log_probs[t]

        best = int(np.argmax(prev))
        if best != self._state:
            logger.debug(f"Decoder: {PHASES[self._state].value} -> {PHASES[best].value}")
        self._state = best
        return PHASES[best]

    def override(self, phase: Union[SnatchPhase, str]):
        """
        Force the persisted phase, bypassing the scored path.

        Used by the session engine to correct drift it can prove
        geometrically (e.g. locked in setup but decoded STANDING).
        """
        phase = SnatchPhase(phase) if isinstance(phase, str) else phase
        if phase.index != self._state:
            logger.info(f"Decoder override: {PHASES[self._state].value} -> {phase.value}")
        self._state = phase.index

    def reset(self):
        """Return to the canonical start phase."""
        self._state = self.START_PHASE.index

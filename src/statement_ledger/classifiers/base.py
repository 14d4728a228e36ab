from abc import ABC, abstractmethod
from dataclasses import dataclass

from statement_ledger.models import FlowClassification, FlowType, SourceType


@dataclass(frozen=True)
class FlowContext:
    source_type: SourceType
    description: str
    amount: float
    section_label: str | None = None


class FlowSignal(ABC):
    @abstractmethod
    def evaluate(self, ctx: FlowContext) -> FlowClassification | None:
        """Return a classification when this signal decides the flow, else None."""
        pass

    @staticmethod
    def decide(ctx: FlowContext, flow_type: FlowType, reason: str) -> FlowClassification:
        return FlowClassification(flow_type=flow_type, reason=reason, section_label=ctx.section_label)

"""Emit one bidirectional legacy <-> target field mapper per operation.

The generated module depends on the standard library only. It carries the
fixed core transformations between the legacy form-style wire shape and
the target JSON shape:

  legacy -> target                  target -> legacy
  amount      -> total.amount       status            -> result
  currency    -> total.currencyCode authorizationCode -> approvalCode
  cardExpiry  -> card.expirationMonth / card.expirationYear
  cardNumber  -> card.number (masked) / card.lastFour
  result      -> status             transactionId     -> txnId
                                    createdAt         -> timestamp
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ..layout import MAPPER
from ..naming import module_file_name, to_type_name
from .base import ArtifactGenerator, GeneratedFile

if TYPE_CHECKING:
    from ..catalog import Operation
    from ..layout import DetectedLayout
    from ..spec_loader import LoadedSpec

logger = logging.getLogger(__name__)

# target status -> legacy result; unmapped values fall through to the sentinels
STATUS_TO_RESULT: dict[str, str] = {
    "APPROVED": "APPROVAL",
    "DECLINED": "DECLINE",
    "PENDING": "PENDING",
    "CANCELLED": "VOID",
    "REFUNDED": "REFUND",
}
RESULT_SENTINEL = "ERROR"
STATUS_SENTINEL = "FAILED"


class FieldMapperGenerator(ArtifactGenerator):
    """Migration mode only: one mapper class per operation."""

    category = MAPPER
    name = "field mapper"

    def generate(self, layout: DetectedLayout, spec: LoadedSpec,
                 operation: Operation) -> list[GeneratedFile]:
        class_name = to_type_name(operation.id) + "Mapper"
        content = self.render(
            "mapper.py.j2",
            source=spec.source,
            operation_id=operation.id,
            class_name=class_name,
            status_to_result=STATUS_TO_RESULT,
            result_sentinel=RESULT_SENTINEL,
            status_sentinel=STATUS_SENTINEL,
        )
        path = layout.tag_dir(MAPPER, operation.primary_tag) / module_file_name(class_name)
        logger.debug("Generating mapper %s for %s", class_name, operation.id)
        return [self.write(path, content)]

"""
Intake Agent: turns raw job input into a MatterContext.

Wraps the intake collaborator in a unit of work so the step is checked and
logged like every other stage.

Pre-check:  document_type_validation
Post-check: client_identified, required_fields_present
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Union

from agents.collaborators import IntakeCollaborator, MappingIntake
from agents.contracts import (
    AgentResult, CheckpointResult, DocumentType, MatterContext, Template, json_safe
)
from agents.unit_of_work import UnitOfWork, checkpoint
from utils.execution_logger import ExecutionLogger


@dataclass
class IntakeRequest:
    raw_input: Union[str, Mapping[str, Any]]
    document_type: str
    template: Template

    def to_dict(self) -> Dict:
        raw = self.raw_input if isinstance(self.raw_input, str) else json_safe(self.raw_input)
        return {
            "raw_input": raw,
            "document_type": self.document_type,
            "template": self.template.id,
        }


def missing_required_fields(matter: MatterContext, template: Template) -> List[str]:
    """Template required fields absent (or empty) in the normalized data."""
    return [
        name for name in template.required_fields
        if matter.normalized_fields.get(name) in (None, "", [], {})
    ]


class IntakeAgent:
    """Validates and normalizes job input through the intake collaborator."""

    name = "IntakeAgent"

    def __init__(self, logger: ExecutionLogger, intake: IntakeCollaborator = None):
        self.intake = intake or MappingIntake()
        self.logger = logger
        self.unit = UnitOfWork(
            name=self.name,
            description="Validate and normalize job input",
            execute=self._execute,
            logger=logger,
            validate=lambda req: req.raw_input is not None and req.template is not None,
            pre_checks=self._pre_checks,
            post_checks=self._post_checks,
            tag="INTAKE",
        )

    def process(self, request: IntakeRequest) -> AgentResult:
        return self.unit.process(request)

    def _execute(self, request: IntakeRequest) -> MatterContext:
        matter = self.intake.normalize(request.raw_input, request.document_type)
        self.logger.info("INTAKE", f"Matter for {matter.client or '?'}: "
                                   f"{len(matter.normalized_fields)} fields")
        return matter

    def _pre_checks(self, request: IntakeRequest) -> List[CheckpointResult]:
        supported = DocumentType.is_supported(request.document_type)
        return [
            checkpoint(
                'document_type_validation',
                supported,
                'Document type is valid' if supported else f"Invalid document type: {request.document_type}"
            )
        ]

    def _post_checks(self, request: IntakeRequest, matter: MatterContext) -> List[CheckpointResult]:
        missing = missing_required_fields(matter, request.template)
        return [
            checkpoint(
                'client_identified',
                bool(matter.client),
                f"Client: {matter.client}" if matter.client else 'No client in input data'
            ),
            checkpoint(
                'required_fields_present',
                not missing,
                'All required fields are present' if not missing
                else f"Missing required fields: {', '.join(missing)}"
            ),
        ]

"""Request validator with pluggable rules that collect error messages."""

from dataclasses import dataclass
from typing import Callable, Generic, TypeVar

from pydantic import BaseModel, Field

from yoma_opportunity.errors import RequestValidationError
from yoma_opportunity.services.lookups import LookupServices
from yoma_opportunity.services.organizations import OrganizationService

T = TypeVar("T")


@dataclass
class ValidationContext:
    """Services the rules use to check that referenced entities exist."""

    lookups: LookupServices
    organizations: OrganizationService


class ValidationResult(BaseModel):
    valid: bool = Field(..., description="No rule reported an error")
    errors: list[str] = Field(default_factory=list)


RuleFn = Callable[[T, ValidationContext], list[str]]


class RequestValidator(Generic[T]):
    """
    Applies every rule to a request. Each rule returns the messages for what it
    found wrong (empty when satisfied); all messages are reported together.
    """

    def __init__(self, context: ValidationContext, rules: list[RuleFn]):
        self._context = context
        self._rules = list(rules)

    def validate(self, request: T) -> ValidationResult:
        errors: list[str] = []
        for rule_fn in self._rules:
            errors.extend(rule_fn(request, self._context))
        return ValidationResult(valid=not errors, errors=errors)

    def validate_and_raise(self, request: T) -> None:
        result = self.validate(request)
        if not result.valid:
            raise RequestValidationError(result.errors)

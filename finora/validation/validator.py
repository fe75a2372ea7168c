"""
Two-Stage Validation Pipeline

DESIGN DECISION: Every payload coming from an input form is validated
before it can reach the record store. Validation happens in two stages:

STAGE 1 - SCHEMA VALIDATION:
- Required field presence
- Type checking (amounts must be real numbers, not text or booleans)
- Range checks (positive amounts, non-negative balances)
- Delegates formats (dates, enums, lengths) to the pydantic input models

STAGE 2 - SEMANTIC VALIDATION:
- Category labels outside the suggested set
- Only runs when stage 1 found no errors

IMPORTANT: Validation NEVER silently fixes issues and never applies part
of a payload. Either the whole typed input model comes back, or
ValidationRejectedError carries every issue that was found.
"""

from collections.abc import Mapping
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, ValidationError

from finora.config import get_settings
from finora.models.records import (
    SUGGESTED_CATEGORIES,
    AccountInput,
    BudgetInput,
    BudgetUpdate,
    GoalInput,
    GoalUpdate,
    TransactionInput,
    TransactionKind,
    TransactionUpdate,
)
from finora.models.validation import ValidationIssue, ValidationResult
from finora.services.storage.interface import ValidationRejectedError


# entity -> (create model, update model)
ENTITY_MODELS: dict[str, tuple[type[BaseModel], Optional[type[BaseModel]]]] = {
    "transaction": (TransactionInput, TransactionUpdate),
    "goal": (GoalInput, GoalUpdate),
    "budget": (BudgetInput, BudgetUpdate),
    "account": (AccountInput, None),
}


# Optional fields an update may clear by sending None
CLEARABLE_FIELDS: dict[str, frozenset[str]] = {
    "transaction": frozenset({"note"}),
}


def _lookup(payload: Mapping, name: str, alias: Optional[str] = None) -> tuple[bool, Any]:
    """Find a field by its Python name or its wire alias."""
    if name in payload:
        return True, payload[name]
    if alias and alias in payload:
        return True, payload[alias]
    return False, None


def _is_number(value: Any) -> bool:
    # bool is an int subclass; "12" is text. Neither counts as an amount.
    if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
        return False
    return Decimal(value).is_finite()


class RecordValidator:
    """
    Validates raw input payloads for every record kind.

    Stage 1: Schema validation (presence, types, ranges)
    Stage 2: Semantic validation (category labels)
    """

    def __init__(self, strict_categories: Optional[bool] = None):
        """
        Initialize validator.

        Args:
            strict_categories: Reject categories outside the suggested set
                               instead of warning. Read from settings if None.
        """
        if strict_categories is None:
            strict_categories = get_settings().app.strict_categories
        self._strict_categories = strict_categories

    # -------------------------------------------------------------------------
    # Stage 1 helpers
    # -------------------------------------------------------------------------

    def _check_amount(
        self,
        payload: Mapping,
        field: str,
        issues: list[ValidationIssue],
        required: bool,
        allow_zero: bool = False,
        alias: Optional[str] = None,
    ) -> None:
        present, value = _lookup(payload, field, alias)
        if not present or value is None:
            if required:
                issues.append(ValidationIssue(
                    field=field,
                    issue_type="missing",
                    message=f"{field} is required",
                    severity="error",
                ))
            return

        if not _is_number(value):
            issues.append(ValidationIssue(
                field=field,
                issue_type="not_a_number",
                message=f"{field} must be a number, got {type(value).__name__}",
                severity="error",
                suggested_fix="Enter the amount as a number, e.g. 1500.00",
            ))
            return

        if allow_zero and value < 0:
            issues.append(ValidationIssue(
                field=field,
                issue_type="negative",
                message=f"{field} cannot be negative",
                severity="error",
            ))
        elif not allow_zero and value <= 0:
            issues.append(ValidationIssue(
                field=field,
                issue_type="not_positive",
                message=f"{field} must be greater than zero",
                severity="error",
                suggested_fix="Amounts are always positive; the type decides the sign",
            ))

    def _check_text(
        self,
        payload: Mapping,
        field: str,
        issues: list[ValidationIssue],
        required: bool,
        alias: Optional[str] = None,
    ) -> None:
        present, value = _lookup(payload, field, alias)
        if not present:
            if required:
                issues.append(ValidationIssue(
                    field=field,
                    issue_type="missing",
                    message=f"{field} is required",
                    severity="error",
                ))
            return

        if not isinstance(value, str) or not value.strip():
            issues.append(ValidationIssue(
                field=field,
                issue_type="empty",
                message=f"{field} cannot be empty",
                severity="error",
            ))

    def _check_present(
        self,
        payload: Mapping,
        field: str,
        issues: list[ValidationIssue],
        alias: Optional[str] = None,
    ) -> None:
        present, value = _lookup(payload, field, alias)
        if not present or value is None or value == "":
            issues.append(ValidationIssue(
                field=field,
                issue_type="missing",
                message=f"{field} is required",
                severity="error",
            ))

    def _check_cleared(
        self,
        entity: str,
        model_cls: type[BaseModel],
        payload: Mapping,
        issues: list[ValidationIssue],
    ) -> None:
        """In an update, None clears a field; only optional fields may be cleared."""
        aliases = {info.alias: name for name, info in model_cls.model_fields.items() if info.alias}
        clearable = CLEARABLE_FIELDS.get(entity, frozenset())
        for key, value in payload.items():
            field = aliases.get(key, key)
            if value is None and field in model_cls.model_fields and field not in clearable:
                issues.append(ValidationIssue(
                    field=field,
                    issue_type="not_clearable",
                    message=f"{field} cannot be cleared",
                    severity="error",
                    suggested_fix="Leave the field out to keep its current value",
                ))

    def _validate_schema(
        self,
        entity: str,
        payload: Mapping,
        partial: bool,
    ) -> list[ValidationIssue]:
        """
        Stage 1: field-level checks that pydantic would either miss or
        coerce (numeric strings, booleans).
        """
        issues: list[ValidationIssue] = []
        required = not partial

        update_model = ENTITY_MODELS[entity][1]
        if partial and update_model is not None:
            self._check_cleared(entity, update_model, payload, issues)

        if entity == "transaction":
            if required:
                self._check_present(payload, "kind", issues, alias="type")
                self._check_present(payload, "occurred_on", issues, alias="date")
            self._check_text(payload, "category", issues, required)
            self._check_amount(payload, "amount", issues, required)

        elif entity == "goal":
            self._check_text(payload, "title", issues, required)
            self._check_amount(payload, "target_amount", issues, required)
            self._check_amount(payload, "current_amount", issues, False, allow_zero=True)
            if required:
                self._check_present(payload, "deadline", issues)

        elif entity == "budget":
            if required:
                self._check_text(payload, "category_ref", issues, True, alias="category_id")
            self._check_amount(payload, "limit_amount", issues, required)
            self._check_amount(payload, "current_amount", issues, False, allow_zero=True)

        elif entity == "account":
            self._check_text(payload, "name", issues, required)
            self._check_amount(payload, "balance", issues, False, allow_zero=True)

        # One issue per field, the first found
        unique: dict[str, ValidationIssue] = {}
        for issue in issues:
            unique.setdefault(issue.field, issue)
        return list(unique.values())

    def _build_model(
        self,
        model_cls: type[BaseModel],
        payload: Mapping,
        issues: list[ValidationIssue],
    ) -> Optional[BaseModel]:
        """
        Construct the typed model, turning pydantic errors into issues.

        Fields already flagged in stage 1 are not reported twice.
        """
        aliases = {
            info.alias: name
            for name, info in model_cls.model_fields.items()
            if info.alias
        }
        flagged = {issue.field for issue in issues}

        try:
            model = model_cls.model_validate(dict(payload))
        except ValidationError as e:
            for error in e.errors():
                loc = error.get("loc") or ("payload",)
                field = aliases.get(str(loc[0]), str(loc[0]))
                if field in flagged:
                    continue
                flagged.add(field)
                issues.append(ValidationIssue(
                    field=field,
                    issue_type=error.get("type", "invalid"),
                    message=f"{field}: {error.get('msg', 'invalid value')}",
                    severity="error",
                ))
            return None

        if issues:
            return None
        return model

    # -------------------------------------------------------------------------
    # Stage 2
    # -------------------------------------------------------------------------

    def _validate_semantic(
        self,
        entity: str,
        model: BaseModel,
    ) -> list[ValidationIssue]:
        """Stage 2: business checks on an already well-formed model."""
        issues: list[ValidationIssue] = []

        if entity == "transaction" and model.category is not None:
            if model.kind is not None:
                suggested = SUGGESTED_CATEGORIES[model.kind]
            else:
                suggested = tuple(
                    label
                    for kind in TransactionKind
                    for label in SUGGESTED_CATEGORIES[kind]
                )
            if model.category not in suggested:
                issues.append(ValidationIssue(
                    field="category",
                    issue_type="unknown_category",
                    message=f"'{model.category}' is not one of the suggested categories",
                    severity="error" if self._strict_categories else "warning",
                    suggested_fix=f"Choose one of: {', '.join(suggested)}",
                ))

        return issues

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def _run(
        self,
        entity: str,
        payload: Any,
        partial: bool,
    ) -> tuple[ValidationResult, Optional[BaseModel]]:
        create_cls, update_cls = ENTITY_MODELS[entity]
        model_cls = update_cls if partial else create_cls
        if model_cls is None:
            raise ValueError(f"{entity} records cannot be updated")

        if not isinstance(payload, Mapping):
            issue = ValidationIssue(
                field="payload",
                issue_type="not_an_object",
                message=f"{entity} payload must be a mapping of fields",
                severity="error",
            )
            return ValidationResult(entity=entity, is_valid=False, issues=[issue]), None

        issues = self._validate_schema(entity, payload, partial)
        model = self._build_model(model_cls, payload, issues)

        if model is not None and partial and not model.model_fields_set:
            issues.append(ValidationIssue(
                field="payload",
                issue_type="empty_update",
                message="Nothing to update",
                severity="error",
            ))
            model = None

        # Only run stage 2 if stage 1 passes
        if model is not None:
            issues.extend(self._validate_semantic(entity, model))

        is_valid = model is not None and not any(i.severity == "error" for i in issues)
        result = ValidationResult(entity=entity, is_valid=is_valid, issues=issues)
        return result, (model if is_valid else None)

    def check(self, entity: str, payload: Any, partial: bool = False) -> ValidationResult:
        """
        Validate without raising.

        Args:
            entity: transaction, goal, budget or account
            payload: Raw field mapping from the input form
            partial: Treat the payload as an update (only given fields checked)

        Returns:
            ValidationResult with all issues found
        """
        result, _ = self._run(entity, payload, partial)
        return result

    def _accept(self, entity: str, payload: Any, partial: bool) -> BaseModel:
        result, model = self._run(entity, payload, partial)
        if model is None:
            raise ValidationRejectedError(
                f"Invalid {entity}: "
                + "; ".join(i.message for i in result.issues if i.severity == "error"),
                issues=result.issues,
            )
        return model

    def validate_transaction(self, payload: Any, partial: bool = False) -> BaseModel:
        """Return a TransactionInput (or TransactionUpdate when partial)."""
        return self._accept("transaction", payload, partial)

    def validate_goal(self, payload: Any, partial: bool = False) -> BaseModel:
        """Return a GoalInput (or GoalUpdate when partial)."""
        return self._accept("goal", payload, partial)

    def validate_budget(self, payload: Any, partial: bool = False) -> BaseModel:
        """Return a BudgetInput (or BudgetUpdate when partial)."""
        return self._accept("budget", payload, partial)

    def validate_account(self, payload: Any) -> AccountInput:
        return self._accept("account", payload, False)

    def validate_contribution(self, amount: Any) -> Decimal:
        """A goal contribution must be a positive number."""
        issues: list[ValidationIssue] = []
        self._check_amount({"amount": amount}, "amount", issues, required=True)
        if issues:
            raise ValidationRejectedError(
                f"Invalid contribution: {issues[0].message}",
                issues=issues,
            )
        return Decimal(str(amount))

    def get_user_friendly_summary(self, result: ValidationResult) -> str:
        """
        Generate a user-friendly summary of validation results.

        This is what the input forms show next to the submit button.
        """
        if result.is_valid and not result.warnings:
            return "✅ All checks passed."

        lines = []

        if result.has_errors:
            lines.append(f"❌ The {result.entity} could not be saved:")
            for issue in result.issues:
                if issue.severity == "error":
                    lines.append(f"   • {issue.message}")
                    if issue.suggested_fix:
                        lines.append(f"     💡 {issue.suggested_fix}")

        if result.warnings:
            if lines:
                lines.append("")
            lines.append("⚠️ Please double-check:")
            for warning in result.warnings:
                lines.append(f"   • {warning}")

        return "\n".join(lines)

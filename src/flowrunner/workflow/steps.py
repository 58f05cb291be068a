"""Step and condition descriptors: a closed union discriminated by ``type``."""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class FlowModel(BaseModel):
    """Base model: snake_case attributes, camelCase JSON."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


BrowserConditionType = Literal["elementExists", "valueMatches"]
VariableConditionType = Literal["variableMatches", "variableExists"]
ConditionType = Literal["elementExists", "valueMatches", "variableMatches", "variableExists"]
ComparisonOperator = Literal["equals", "contains", "greaterThan", "lessThan"]
TransformType = Literal["none", "stripCurrency", "stripNonNumeric", "removeChars", "regexReplace"]

BROWSER_CONDITION_TYPES = frozenset({"elementExists", "valueMatches"})

# Keys an editor export may place on a conditional node's data payload
CONDITION_KEYS = frozenset(
    {
        "conditionType",
        "selector",
        "variableName",
        "expectedValue",
        "condition",
        "transformType",
        "transformPattern",
        "transformReplace",
        "transformChars",
        "parseAsNumber",
        "nodeId",
    }
)


class ConditionFields(FlowModel):
    """Comparison and transform options shared by every condition."""

    selector: str | None = None
    variable_name: str | None = None
    expected_value: str | None = None
    condition: ComparisonOperator = "equals"
    transform_type: TransformType | list[TransformType] = "none"
    transform_pattern: str | None = None
    transform_replace: str | None = None
    transform_chars: str | None = None
    parse_as_number: bool = False
    node_id: str | None = None

    @field_validator("expected_value", mode="before")
    @classmethod
    def _stringify_expected(cls, value: Any) -> Any:
        if value is None or isinstance(value, str):
            return value
        return str(value)

    @field_validator("condition", mode="before")
    @classmethod
    def _default_operator(cls, value: Any) -> Any:
        return value or "equals"

    def transforms(self) -> list[str]:
        if isinstance(self.transform_type, list):
            return list(self.transform_type)
        return [self.transform_type]


class ConditionConfig(ConditionFields):
    """A conditional descriptor attached to a conditional node."""

    condition_type: ConditionType

    @property
    def is_browser(self) -> bool:
        return self.condition_type in BROWSER_CONDITION_TYPES


class StepBase(FlowModel):
    id: str | None = None
    description: str | None = None


# ---------------------------------------------------------------------------
# Browser steps
# ---------------------------------------------------------------------------


class NavigateStep(StepBase):
    type: Literal["navigate"]
    value: str


class ClickStep(StepBase):
    type: Literal["click"]
    selector: str


class TypeStep(StepBase):
    type: Literal["type"]
    selector: str
    value: str = ""


class ExtractStep(StepBase):
    type: Literal["extract"]
    selector: str
    store_key: str | None = None


class ScrollStep(StepBase):
    type: Literal["scroll"]
    scroll_type: Literal["toElement", "by"] = "by"
    selector: str | None = None
    scroll_amount: int | str = 0


class ScreenshotStep(StepBase):
    type: Literal["screenshot"]


class SelectOptionStep(StepBase):
    type: Literal["selectOption"]
    selector: str
    option_value: str = ""


class FileUploadStep(StepBase):
    type: Literal["fileUpload"]
    selector: str
    file_path: str


class HoverStep(StepBase):
    type: Literal["hover"]
    selector: str


class BrowserConditionalStep(StepBase, ConditionFields):
    type: Literal["browserConditional"]
    condition_type: BrowserConditionType = Field(
        validation_alias=AliasChoices("conditionType", "browserConditionType", "condition_type"),
    )

    def to_condition(self) -> ConditionConfig:
        fields = self.model_dump(exclude={"type", "id", "description"})
        return ConditionConfig.model_validate(fields)


# ---------------------------------------------------------------------------
# Logic steps
# ---------------------------------------------------------------------------


class WaitStep(StepBase):
    type: Literal["wait"]
    value: str = "0"

    @field_validator("value", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> Any:
        return "0" if value is None else str(value)


class SetVariableStep(StepBase):
    type: Literal["setVariable"]
    variable_name: str
    value: Any = None


class VariableConditionalStep(StepBase, ConditionFields):
    type: Literal["variableConditional"]
    condition_type: VariableConditionType = Field(
        default="variableMatches",
        validation_alias=AliasChoices("conditionType", "variableConditionType", "condition_type"),
    )
    variable_name: str

    def to_condition(self) -> ConditionConfig:
        fields = self.model_dump(exclude={"type", "id", "description"})
        return ConditionConfig.model_validate(fields)


class ApiCallStep(StepBase):
    type: Literal["apiCall"]
    url: str
    method: Literal["GET", "POST", "PUT", "PATCH", "DELETE"] = "GET"
    headers: dict[str, str] = {}
    body: Any = None
    store_key: str | None = None


class AIStepFields(StepBase):
    model: str = ""
    prompt: str = ""
    system_prompt: str | None = None
    temperature: float = 0.0
    max_tokens: int = 256
    top_p: float | None = None
    timeout_ms: int | None = None
    base_url: str | None = None
    api_key: str | None = None
    credential_id: str | None = None
    store_key: str | None = None


class AIOpenAIStep(AIStepFields):
    type: Literal["aiOpenAI"]


class AIAnthropicStep(AIStepFields):
    type: Literal["aiAnthropic"]


class AIOllamaStep(AIStepFields):
    type: Literal["aiOllama"]


class AIGenerateTextStep(AIStepFields):
    type: Literal["aiGenerateText"]
    provider: Literal["openai", "anthropic", "ollama"] = "openai"


Step = Annotated[
    Union[
        NavigateStep,
        ClickStep,
        TypeStep,
        ExtractStep,
        ScrollStep,
        ScreenshotStep,
        SelectOptionStep,
        FileUploadStep,
        HoverStep,
        BrowserConditionalStep,
        WaitStep,
        SetVariableStep,
        VariableConditionalStep,
        ApiCallStep,
        AIOpenAIStep,
        AIAnthropicStep,
        AIOllamaStep,
        AIGenerateTextStep,
    ],
    Field(discriminator="type"),
]

BROWSER_STEP_TYPES = frozenset(
    {
        "navigate",
        "click",
        "type",
        "extract",
        "scroll",
        "screenshot",
        "selectOption",
        "fileUpload",
        "hover",
        "browserConditional",
    }
)

CONDITIONAL_STEP_TYPES = frozenset({"browserConditional", "variableConditional"})

import pytest
from langchain_core.messages import AIMessage

from storyanchor.infra.llm.provider import TextGenerationProvider
from storyanchor.infra.storage.sql_db import GenerationHistory, NarrativeStore, create_db_engine
from storyanchor.services.generation_service import GenerationService


class StatusError(Exception):
    """模拟 SDK 的 APIStatusError"""

    def __init__(self, status_code: int, message: str = "upstream failure"):
        super().__init__(message)
        self.status_code = status_code


class RecordingChatModel:
    def __init__(self, content: str = "夜色沉沉，雨声未歇。", input_tokens: int = 1200, output_tokens: int = 800):
        self.content = content
        self.input_tokens = input_tokens
        self.output_tokens = output_tokens
        self.error = None
        self.calls = []

    def invoke(self, messages):
        self.calls.append(messages)
        if self.error is not None:
            raise self.error
        return AIMessage(
            content=self.content,
            usage_metadata={
                "input_tokens": self.input_tokens,
                "output_tokens": self.output_tokens,
                "total_tokens": self.input_tokens + self.output_tokens,
            },
            response_metadata={"stop_reason": "end_turn"},
        )


class RecordingFactory:
    def __init__(self, model):
        self.model = model
        self.calls = []

    def __call__(self, temperature, max_tokens):
        self.calls.append({"temperature": temperature, "max_tokens": max_tokens})
        return self.model


@pytest.fixture
def engine():
    engine = create_db_engine("sqlite://")
    yield engine
    engine.dispose()


@pytest.fixture
def store(engine):
    return NarrativeStore(engine)


@pytest.fixture
def history(engine):
    return GenerationHistory(engine)


@pytest.fixture
def project(store):
    return store.create_project(
        name="长夜行",
        genre="武侠",
        world_setting="大燕末年，江湖门派依附朝堂。",
        cultural_context="chinese",
    )


@pytest.fixture
def alice(store, project):
    return store.create_character(
        project.id,
        name="Alice",
        role_type="protagonist",
        personality_traits=["stubborn", "loyal"],
        things_never_do=["betray a friend"],
        deep_motivation="revenge",
    )


@pytest.fixture
def chat_model():
    return RecordingChatModel()


@pytest.fixture
def llm_factory(chat_model):
    return RecordingFactory(chat_model)


@pytest.fixture
def service(store, history, llm_factory):
    return GenerationService(store, TextGenerationProvider(llm_factory), history)


@pytest.fixture
def status_error():
    return StatusError

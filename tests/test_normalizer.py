from miktos_ai.llm.normalizer import (
    block_to_text,
    blocks_to_text,
    collect_system_text,
    estimate_tokens,
    request_messages,
)
from miktos_ai.llm.types import (
    CodeBlock,
    CompletionRequest,
    ImageBlock,
    Message,
    MessageRole,
    OpaqueBlock,
    TextBlock,
    ToolResultBlock,
    ToolUseBlock,
    content_block_from_dict,
)


def test_blocks_to_text_renders_every_known_type_in_order():
    blocks = [
        TextBlock("Look at this:"),
        CodeBlock("print('hi')", language="python"),
        ToolUseBlock("search", tool_input={"q": "x"}),
        ToolResultBlock({"hits": 2}),
        ImageBlock(caption="a cat"),
    ]
    assert blocks_to_text(blocks) == (
        "Look at this:\n"
        "```python\nprint('hi')\n```\n"
        "[Tool use: search]\n"
        '[Tool result: {"hits": 2}]\n'
        "[Image: a cat]"
    )


def test_blocks_to_text_is_deterministic():
    blocks = [TextBlock("a"), ToolResultBlock([1, 2]), OpaqueBlock("audio")]
    assert blocks_to_text(blocks) == blocks_to_text(list(blocks))


def test_unknown_and_incomplete_blocks_degrade_to_placeholders():
    assert block_to_text(OpaqueBlock("audio")) == "[audio content]"
    assert block_to_text({"type": "video", "url": "x"}) == "[video content]"
    assert block_to_text({"text": "no tag"}) == "[unknown content]"
    assert block_to_text(TextBlock("")) == "[text content]"
    assert block_to_text(ImageBlock()) == "[image content]"
    assert block_to_text(CodeBlock("", language="go")) == "[code content]"
    assert block_to_text(object()) == "[unknown content]"


def test_code_block_without_language_and_dict_blocks():
    assert block_to_text(CodeBlock("x = 1")) == "```\nx = 1\n```"
    assert block_to_text({"type": "tool_use", "toolName": "grep"}) == "[Tool use: grep]"
    assert block_to_text({"type": "text", "text": "hi"}) == "hi"


def test_tool_result_that_is_not_json_serializable_is_still_rendered():
    rendered = block_to_text(ToolResultBlock(result={1, 2}))
    assert rendered.startswith("[Tool result: ")


def test_blocks_to_text_handles_strings_none_and_non_iterables():
    assert blocks_to_text("already text") == "already text"
    assert blocks_to_text(None) == ""
    assert blocks_to_text(42) == "[unknown content]"
    assert blocks_to_text([]) == ""


def test_content_block_from_dict():
    assert content_block_from_dict({"type": "text", "text": "hi"}) == TextBlock("hi")
    assert content_block_from_dict({"type": "code", "code": "x", "language": "py"}) == CodeBlock("x", "py")
    assert content_block_from_dict({"type": "tool_use", "toolName": "grep"}).tool_name == "grep"
    assert content_block_from_dict({"type": "tool_result", "result": 3}).result == 3
    assert content_block_from_dict({"type": "image", "caption": "c"}).caption == "c"
    opaque = content_block_from_dict({"type": "audio", "url": "u"})
    assert isinstance(opaque, OpaqueBlock)
    assert opaque.type == "audio"


def test_request_messages_wraps_string_prompt_as_user_message():
    (message,) = request_messages(CompletionRequest(model_id="gpt-4", prompt="Hello"))
    assert message.role == MessageRole.USER
    assert blocks_to_text(message.content) == "Hello"


def test_collect_system_text_keeps_prompt_then_system_messages():
    messages = [
        Message.from_text("system", "Be brief."),
        Message.from_text("user", "Hi"),
        Message.from_text("system", "Use English."),
    ]
    assert collect_system_text(messages, "You are helpful.") == "You are helpful.\n\nBe brief.\n\nUse English."
    assert collect_system_text([Message.from_text("user", "Hi")], None) is None


def test_estimate_tokens_rounds_up():
    assert estimate_tokens("", 4) == 0
    assert estimate_tokens("abcde", 4) == 2
    assert estimate_tokens("abcdefghi", 4.5) == 2
    assert estimate_tokens("abcdefghij", 4.5) == 3


def test_message_with_plain_string_content_becomes_one_text_block():
    message = Message(role=MessageRole.USER, content="hello")

    assert message.content == (TextBlock("hello"),)
    assert blocks_to_text(message.content) == "hello"

from relay.prompt import DELIMITER, SUMMARY_INSTRUCTIONS, PromptBuilder


def test_build_embeds_context_verbatim():
    context = "The sun is a star.\nIt is   very hot."
    prompt = PromptBuilder().build(context)

    assert context in prompt
    assert prompt.startswith(SUMMARY_INSTRUCTIONS)
    assert "3 to 4 sentences" in prompt


def test_build_is_deterministic():
    builder = PromptBuilder()
    assert builder.build("abc") == builder.build("abc")


def test_build_keeps_delimiter_inside_context():
    context = f"before\n{DELIMITER}\nafter {DELIMITER} end"
    prompt = PromptBuilder().build(context)

    assert f"{DELIMITER}\n{context}\n{DELIMITER}" in prompt


def test_build_does_not_truncate_long_context():
    context = "word " * 20_000
    assert context in PromptBuilder().build(context)


def test_custom_instructions():
    builder = PromptBuilder(instructions="Summarize briefly.")
    assert builder.build("text").startswith("Summarize briefly.\n\n")

from studio.response import interpret


def _result(parts, grounding=None, **extra):
    candidate = {"content": {"role": "model", "parts": parts}, "finishReason": "STOP"}
    if grounding is not None:
        candidate["groundingMetadata"] = grounding
    return {"candidates": [candidate], **extra}


class TestInterpret:
    def test_plain_text(self):
        result = interpret(_result([{"text": "Hello "}, {"text": "world"}]))
        assert result.text == "Hello world"
        assert result.image_part is None
        assert result.citations is None
        assert result.finish_reason == "STOP"

    def test_thought_parts_are_hidden(self):
        result = interpret(_result([{"text": "pondering", "thought": True}, {"text": "answer"}]))
        assert result.text == "answer"

    def test_first_image_wins(self):
        result = interpret(
            _result(
                [
                    {"text": "Here you go"},
                    {"inlineData": {"data": "Zmlyc3Q=", "mimeType": "image/png"}},
                    {"inlineData": {"data": "c2Vjb25k", "mimeType": "image/jpeg"}},
                ]
            )
        )
        assert result.image_part.inline_data.data == "Zmlyc3Q="
        assert result.image_part.inline_data.mime_type == "image/png"

    def test_citations(self):
        grounding = {
            "groundingChunks": [
                {"web": {"uri": "https://a.example", "title": "A"}},
                {"web": {"title": "No link"}},
                {"web": {"uri": "https://b.example"}},
            ]
        }
        result = interpret(_result([{"text": "cited"}], grounding))
        assert [(c.title, c.uri) for c in result.citations] == [
            ("A", "https://a.example"),
            ("Source", "https://b.example"),
        ]

    def test_malformed_grounding_chunks_are_skipped(self):
        grounding = {
            "groundingChunks": [
                "not-a-chunk",
                None,
                {"web": "https://flat.example"},
                {"web": {"uri": "https://ok.example", "title": "  "}},
            ]
        }
        result = interpret(_result([{"text": "cited"}], grounding))
        assert [(c.title, c.uri) for c in result.citations] == [("Source", "https://ok.example")]

    def test_empty_and_blocked(self):
        result = interpret({"promptFeedback": {"blockReason": "SAFETY"}})
        assert result.is_empty
        assert result.block_reason == "SAFETY"
        assert interpret({}).is_empty

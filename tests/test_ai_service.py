from jevehome.services.ai_service import _build_contents, clean_title


def test_history_roles_map_to_gemini_roles():
    contents = _build_contents(
        [
            {"role": "user", "content": "When did they meet?"},
            {"role": "assistant", "content": "In 2011."},
            {"role": "assistant", "content": "   "},
        ],
        "And the wedding?",
    )

    assert [c.role for c in contents] == ["user", "model", "user"]
    assert contents[-1].parts[0].text == "And the wedding?"


def test_clean_title_strips_quotes_and_cuts():
    assert clean_title('  "Our Wedding Year"  ') == "Our Wedding Year"
    assert clean_title("x" * 80, max_chars=60) == "x" * 60
    assert clean_title(None) == ""

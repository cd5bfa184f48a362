from product_research.services.content_sanitizer import ContentSanitizer


def test_strips_scripts_styles_and_chrome():
    html = (
        "<html><head><style>.x{color:red}</style><script>track()</script></head>"
        "<body><nav>Home | Shop</nav><h1>Mouse</h1><p>Price: $19.99</p>"
        "<footer>Copyright</footer><!-- hidden --></body></html>"
    )
    text = ContentSanitizer.strip_markup(html)

    assert "track()" not in text
    assert "color:red" not in text
    assert "Home | Shop" not in text
    assert "Copyright" not in text
    assert "hidden" not in text
    assert "Price: $19.99" in text
    assert "<" not in text


def test_keeps_window_around_keywords():
    lines = [f"filler {i}" for i in range(20)]
    lines[10] = "Price: $49.99"
    text = ContentSanitizer.extract_relevant_sections("\n".join(lines))

    kept = text.split("\n")
    assert kept[0] == "filler 7"
    assert kept[-1] == "filler 13"
    assert "Price: $49.99" in kept


def test_no_keyword_keeps_full_text():
    text = "alpha\nbeta\ngamma"
    assert ContentSanitizer.extract_relevant_sections(text) == text


def test_normalizes_whitespace():
    assert ContentSanitizer.normalize_whitespace("  a   b\n\n\n\nc \t d  ") == "a b\n\nc d"


def test_truncates_to_token_budget():
    sanitizer = ContentSanitizer(token_budget=100)
    text = sanitizer.sanitize("price " * 200)
    assert len(text) == 400


def test_empty_content():
    assert ContentSanitizer().sanitize("") == ""
    assert ContentSanitizer().sanitize(None) == ""


def test_estimate_tokens():
    assert ContentSanitizer.estimate_tokens("abcde") == 2
    assert ContentSanitizer.estimate_tokens("") == 0

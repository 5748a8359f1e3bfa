from scada_import.domain.imports.separators import Separator, detect_separator


def test_comma_wins_over_fewer_semicolons():
    # 9 commas, 2 semicolons, no tabs
    content = "\n".join(["a,b,c,d", "1,2,3,4", "5,6,7,8", "x;y;z"])

    assert detect_separator(content) is Separator.COMMA


def test_semicolon_wins_when_more_frequent_than_comma():
    # 2 commas, 9 semicolons
    content = "\n".join(["a;b;c;d", "1;2;3;4", "5;6;7;8", "x,y,z"])

    assert detect_separator(content) is Separator.SEMICOLON


def test_tab_wins_when_it_outnumbers_both():
    # 9 tabs, 2 commas
    content = "\n".join(["a\tb\tc\td", "1\t2\t3\t4", "5\t6\t7\t8", "x,y,z"])

    assert detect_separator(content) is Separator.TAB


def test_tab_tie_with_comma_falls_back_to_comma():
    assert detect_separator("a\tb,c\n") is Separator.COMMA


def test_space_is_never_detected():
    assert detect_separator("time kw kvar\n10 20 30\n") is Separator.COMMA


def test_empty_text_defaults_to_comma():
    assert detect_separator("") is Separator.COMMA


def test_only_first_five_non_empty_lines_are_sampled():
    head = "\n\n".join(["a;b;c"] * 5)
    tail = "\n".join(["1,2,3,4,5,6,7,8"] * 50)
    content = "\n\n" + head + "\n" + tail

    assert detect_separator(content) is Separator.SEMICOLON


def test_detection_is_deterministic():
    content = "Timestamp;Active Power (kW);Reactive\n2024-01-01 00:00;12,5;3\n"

    results = {detect_separator(content) for _ in range(10)}

    assert results == {Separator.SEMICOLON}


def test_separator_chars():
    assert Separator.TAB.char == "\t"
    assert Separator.COMMA.char == ","
    assert Separator.SEMICOLON.char == ";"
    assert Separator.SPACE.char == " "

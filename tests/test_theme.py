from vm_provision.theme import display_results_table, print_error, print_message


def test_results_table_shows_messages_verbatim(capsys):
    display_results_table(
        [
            ["[/x]", "failed", "bad name '[/x]'"],
            ["s2", "tolerated", "[b]x[/b]"],
        ]
    )

    out = capsys.readouterr().out
    assert "'[/x]'" in out
    assert "[b]x[/b]" in out


def test_print_helpers_do_not_interpret_markup(capsys):
    print_error("Unknown configuration keys: [/colour]")
    print_message("Logging to [red]/tmp[/red]")

    captured = capsys.readouterr()
    assert "[/colour]" in captured.err
    assert "[red]/tmp[/red]" in captured.out

def test_create_admin(app, store):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["create-admin", "--email", "Root@x.com", "--name", "Root", "--password", "rootpass"])
    again = runner.invoke(args=["create-admin", "--email", "root@x.com", "--name", "Root", "--password", "rootpass"])

    assert result.exit_code == 0, result.output
    assert store.get_user_by_email("root@x.com").is_admin
    assert again.exit_code != 0
    assert "Email already exists" in again.output


def test_sweep_tokens(app, sessions, store, past_codec):
    result = sessions.register("User A", "a@x.com", "secret1")
    store.add_refresh_token(result.user, past_codec.mint_refresh(result.user))

    output = app.test_cli_runner().invoke(args=["sweep-tokens"]).output

    assert "Expired tokens removed: 1 from 1 users" in output
    assert "old tokens removed: 0" in output

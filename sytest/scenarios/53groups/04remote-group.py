"""Group membership across servers."""


async def _join_remote_group(creator, user):
    group_id = await creator.create_group()
    await creator.invite_group_user(group_id, user.user_id)
    await user.accept_group_invite(group_id)

    body = await user.get_joined_groups()
    assert body["groups"] == [group_id], body
    return group_id


async def add_remote_group_user(ctx, creator, user):
    group_id = await _join_remote_group(creator, user)
    # Users are shared between tests; start the next one with no groups
    await user.leave_group(group_id)


async def remove_self_from_remote_group(ctx, creator, user):
    group_id = await _join_remote_group(creator, user)

    await user.leave_group(group_id)
    body = await user.get_joined_groups()
    assert body["groups"] == [], body


def register(tests):
    tests.declare_test(
        "Add remote group users",
        requires=["local_admin", "remote_user"],
        do=add_remote_group_user,
    )

    tests.declare_test(
        "Remove self from remote group",
        requires=["local_admin", "remote_user"],
        do=remove_self_from_remote_group,
    )

"""Presence and profile propagation."""

DISPLAYNAME = "SyTest Admin"
STATUS_MSG = "Running tests"


async def set_online(ctx, local_admin, clients, rooms):
    await local_admin.set_presence("online", status_msg=STATUS_MSG)


async def presence_seen(ctx, local_admin, clients, rooms):
    # Presence is only shared with users in a common room
    for client in clients:
        if client is local_admin:
            continue
        user = client.users.get(local_admin.user_id)
        if user is None or user.status_msg != STATUS_MSG:
            return False
    return True


async def set_displayname(ctx, local_admin, remote_user):
    await local_admin.set_displayname(DISPLAYNAME)


async def displayname_seen(ctx, local_admin, remote_user):
    name = await remote_user.get_displayname(local_admin.user_id)
    if name != DISPLAYNAME:
        raise AssertionError(f"Expected displayname {DISPLAYNAME!r}, got {name!r}")
    return True


def register(tests):
    tests.declare_test(
        "Presence changes are seen by other servers",
        requires=["local_admin", "clients", "rooms"],
        do=set_online,
        check=presence_seen,
        wait_time=10,
    )

    tests.declare_test(
        "A displayname change is visible to a remote user",
        requires=["local_admin", "remote_user"],
        do=set_displayname,
        check=displayname_seen,
        wait_time=5,
    )

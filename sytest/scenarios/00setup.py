"""Fixtures derived from the clients booted by the harness."""


async def all_registered(ctx, clients):
    return all(client.user_id and client.is_running for client in clients)


async def provide_users(ctx, clients):
    ctx.provide("local_admin", clients[0])
    if len(clients) > 1:
        ctx.provide("remote_user", clients[1])


async def users_provided(ctx, clients):
    return ctx.lookup("local_admin") is not None


def register(tests):
    tests.declare_test(
        "Every client has a registered user",
        requires=["clients"],
        check=all_registered,
    )

    tests.declare_test(
        "A local admin and a remote user are available",
        requires=["clients"],
        provides=["local_admin", "remote_user"],
        do=provide_users,
        check=users_provided,
    )

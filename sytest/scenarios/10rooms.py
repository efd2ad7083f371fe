"""Room creation and federated joins."""


async def create_room(ctx, clients):
    room = await clients[0].create_room(visibility="public")
    ctx.logger.info("room_created", room_id=room.room_id)
    ctx.provide("room_id", room.room_id)


async def room_is_known(ctx, clients):
    room_id = ctx.lookup("room_id")
    return room_id is not None and room_id in clients[0].rooms


async def join_room(ctx, clients, room_id):
    rooms = [clients[0].rooms[room_id]]
    for client in clients[1:]:
        rooms.append(await client.join_room(room_id))
    ctx.provide("rooms", rooms)


async def membership_converged(ctx, clients, room_id):
    """Every client sees exactly every user joined."""
    expected = {client.user_id: "join" for client in clients}
    for client in clients:
        room = client.rooms.get(room_id)
        if room is None:
            return False
        if room.membership_map() != expected:
            return False
    return True


def register(tests):
    tests.declare_test(
        "A room can be created",
        requires=["clients"],
        provides=["room_id"],
        do=create_room,
        check=room_is_known,
    )

    tests.declare_test(
        "Users on every server can join the room",
        requires=["clients", "room_id"],
        provides=["rooms"],
        do=join_room,
        check=membership_converged,
        wait_time=10,
    )

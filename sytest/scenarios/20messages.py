"""Message delivery across servers."""

MESSAGE = {"msgtype": "m.text", "body": "Here is a message"}


async def send_message(ctx, rooms):
    event_id = await rooms[0].send_message(MESSAGE["body"])
    ctx.logger.info("message_sent", event_id=event_id)


async def message_received(ctx, rooms):
    return all(room.messages == [MESSAGE] for room in rooms[1:])


def register(tests):
    tests.declare_test(
        "A message is delivered to every other member",
        requires=["rooms"],
        do=send_message,
        check=message_received,
        wait_time=10,
    )

import asyncio

import tramway

async def main():
    policy = tramway.TransformPolicy(str.upper, forward_binary=False)

    async with tramway.EchoServer(tramway.Settings(port=0), policy=policy) as server:
        host, port = server.sockname

        async with tramway.connect(f'ws://{host}:{port}') as websocket:
            await websocket.send_str('hello')
            print(await websocket.receive_str())

asyncio.run(main())

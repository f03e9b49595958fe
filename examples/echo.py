import tramway

settings = tramway.Settings(port=8080)

# Pure echo. Use tramway.EchoPolicy('Echo: ') to prefix every echoed text message instead.
server = tramway.EchoServer(settings, policy=tramway.EchoPolicy())
server.run()

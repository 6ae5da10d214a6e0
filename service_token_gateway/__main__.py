from service_token_gateway.app.main import main

main()

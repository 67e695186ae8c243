from interactive_bridge.server.app import main

main()

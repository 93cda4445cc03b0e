from phoenix_agent.app import main

main()

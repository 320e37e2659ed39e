from agent_council.cli import main

main()

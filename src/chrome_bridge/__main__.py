from chrome_bridge.cli import main

main()

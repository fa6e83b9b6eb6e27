from offerdesk.webui.server import main

main()

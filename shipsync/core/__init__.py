SERVICE_NAME = "shipsync"

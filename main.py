from offer_engine_integrated import main

if __name__ == "__main__":
    main()

######################################################
#   Copyright (C) Microsoft. All rights reserved.    #
######################################################
